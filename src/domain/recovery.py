"""
Password recovery domain service.

Reset State Machine
===================

    Requested --(TOTP disabled)--> EmailFlow --(link)--------> Redeemed -> Consumed
    Requested --(TOTP enabled)---> TotpFlow  --(TOTP code)---> Redeemed -> Consumed

States:
- Requested: request_reset() looked the account up
- EmailFlow: reset token (requires_totp=false) emailed, 1h expiry
- TotpFlow: reset token (requires_totp=true) stored, nothing emailed.
  The caller prompts for a TOTP code and calls request_reset_with_totp()
- Redeemed: reset_password() consumed the token atomically
- Consumed: new password hash written, token can never be used again

A second factor changes the out-of-band channel entirely: "the mailbox you
control" is replaced by "the authenticator you control". The
requires_totp=true token from TotpFlow is never delivered anywhere; the
only token handed to a caller in that flow comes from
request_reset_with_totp(), after the TOTP challenge passed.

Unknown addresses produce the same ResetRequest(requires_totp=False) as
an account without TOTP, so the response shape reveals nothing.
"""

import logging
from dataclasses import dataclass, field

from .credentials import CredentialStore, TokenIssuer, validate_password_length
from .exceptions import InvalidCredentials, InvalidOrExpired, InvalidTotpCode
from .identity import require_collaborators
from .messages import deliver, password_reset_message, query_value
from .models import ResetRequest
from .policy import AuthPolicy
from .ports import CredentialKind, Notifier, PersistenceGateway
from .totp import TotpService

logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 32


@dataclass
class PasswordRecoveryService:
    """Token-based password reset and authenticated password change."""

    gateway: PersistenceGateway
    notifier: Notifier
    totp: TotpService
    policy: AuthPolicy = field(default_factory=AuthPolicy)

    def __post_init__(self) -> None:
        require_collaborators(
            self, gateway=self.gateway, notifier=self.notifier, totp=self.totp
        )
        self.credentials = CredentialStore(cost=self.policy.bcrypt_cost)

    def request_reset(self, email: str) -> ResetRequest:
        """Start a reset. Emails a link unless the account has TOTP enabled."""
        account = self.gateway.find_active_by_email(email.strip())
        if account is None:
            logger.info("Password reset requested for unknown email")
            return ResetRequest(requires_totp=False)

        if account.totp_enabled:
            self._issue_token(account.id, requires_totp=True)
            logger.info("Password reset for account %s routed to TOTP", account.id)
            return ResetRequest(requires_totp=True)

        token = self._issue_token(account.id, requires_totp=False)
        reset_url = self.policy.link(f"reset-password?token={query_value(token)}")
        deliver(self.notifier, account.email, password_reset_message(account.username, reset_url))
        return ResetRequest(requires_totp=False)

    def request_reset_with_totp(self, email: str, totp_code: str) -> str:
        """
        Exchange a valid TOTP code for an immediately redeemable reset token.

        Raises:
            InvalidTotpCode: unknown account, TOTP not enabled, or wrong code
        """
        if not self.totp.verify_challenge(email, totp_code):
            logger.warning("TOTP-gated reset rejected")
            raise InvalidTotpCode()

        account = self.gateway.find_active_by_email(email.strip())
        if account is None:
            raise InvalidTotpCode()

        # The challenge was the gate; the token itself needs no further TOTP
        return self._issue_token(account.id, requires_totp=False)

    def reset_password(self, token: str, new_password: str) -> None:
        """
        Redeem a reset token and set a new password.

        Raises:
            ValidationError: new password too short (token is not consumed)
            InvalidOrExpired: unknown, expired or already used token, or the
                account is no longer active
        """
        validate_password_length(new_password, self.policy.min_password_length)

        credential = self.gateway.consume_credential(CredentialKind.PASSWORD_RESET, token)
        if credential is None or credential.account_id is None:
            logger.warning("Reset token rejected")
            raise InvalidOrExpired("Invalid or expired reset token")

        account = self.gateway.get_account(credential.account_id)
        if account is None or not account.is_active:
            logger.warning("Reset token redeemed for missing or inactive account")
            raise InvalidOrExpired("Invalid or expired reset token")

        self.gateway.update_password_hash(account.id, self.credentials.hash_password(new_password))
        logger.info("Password reset for account %s", account.id)

    def change_password(self, account_id: str, current_password: str, new_password: str) -> None:
        """
        In-session password change. Proof of the current password is always
        required, TOTP or not.

        Raises:
            InvalidCredentials: current password incorrect, or account inactive
            ValidationError: new password too short
        """
        account = self.gateway.get_account(account_id)
        if account is not None and not account.is_active:
            account = None
        if not self.credentials.verify_password(
            current_password, account.password_hash if account is not None else None
        ):
            raise InvalidCredentials("Current password is incorrect")

        validate_password_length(new_password, self.policy.min_password_length)

        self.gateway.update_password_hash(account.id, self.credentials.hash_password(new_password))
        logger.info("Password changed for account %s", account.id)

    def _issue_token(self, account_id: str, requires_totp: bool) -> str:
        token = TokenIssuer.opaque_token(RESET_TOKEN_BYTES)
        self.gateway.issue_credential(
            CredentialKind.PASSWORD_RESET,
            token,
            self.policy.password_reset_ttl,
            account_id=account_id,
            requires_totp=requires_totp,
        )
        return token
