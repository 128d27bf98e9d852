"""
Identity domain service - registration, login, sessions.

Login flow
==========

    authenticate(identifier, password)
        -> lookup active account by username OR email
        -> bcrypt comparison (dummy hash when the lookup missed)
        -> email verification gate (strict) / auto-verify (relaxed)
        -> new session row + last_login touch

Unknown identifier and wrong password raise the same InvalidCredentials
with the same message; only the log line tells them apart.

TOTP is not challenged here. LoginResult.totp_required tells the caller
whether to run TotpService.verify_challenge before honouring the session.
"""

import logging
from dataclasses import dataclass, field

from .credentials import (
    CredentialStore,
    TokenIssuer,
    validate_email,
    validate_password_strength,
    validate_username,
)
from .exceptions import (
    DuplicateIdentity,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpired,
    NotConfigured,
    ValidationError,
)
from .messages import deliver, query_value, verification_message
from .models import Account, LoginResult, RegistrationResult, ResendResult, SessionIdentity
from .policy import AuthPolicy
from .ports import CredentialKind, Notifier, PersistenceGateway

logger = logging.getLogger(__name__)

VERIFICATION_CODE_LENGTH = 6
_DUPLICATE_MESSAGE = "Username or email already exists"


def require_collaborators(service: object, **collaborators: object) -> None:
    """Fail fast at construction when a collaborator is missing."""
    for name, value in collaborators.items():
        if value is None:
            raise NotConfigured(f"{type(service).__name__} requires a {name}")


def open_session(
    gateway: PersistenceGateway,
    account: Account,
    policy: AuthPolicy,
    client_metadata: dict[str, str] | None = None,
) -> LoginResult:
    """Create a session for an authenticated account and touch last_login."""
    token = TokenIssuer.opaque_token()
    gateway.create_session(account.id, token, policy.session_ttl, client_metadata)
    gateway.touch_last_login(account.id)
    logger.info("Session created for account %s", account.id)
    return LoginResult(account=account.view(), session_token=token)


@dataclass
class IdentityService:
    """
    Domain service for account identity.

    Orchestrates registration, email verification, password login,
    session validation and logout.
    """

    gateway: PersistenceGateway
    notifier: Notifier
    policy: AuthPolicy = field(default_factory=AuthPolicy)

    def __post_init__(self) -> None:
        require_collaborators(self, gateway=self.gateway, notifier=self.notifier)
        self.credentials = CredentialStore(cost=self.policy.bcrypt_cost)

    def register(
        self,
        username: str,
        email: str,
        password: str,
        skip_email_verification: bool = False,
    ) -> RegistrationResult:
        """
        Register a new account.

        A 6-digit verification code is always persisted (24h). It is returned
        to the caller when skip_email_verification is set or when the email
        could not be delivered; a delivery failure never rolls back the account.

        Raises:
            ValidationError: malformed username, email or password
            DuplicateIdentity: username or email already taken
            PersistenceFailure: store unavailable
        """
        username = validate_username(username)
        email = validate_email(email)
        validate_password_strength(password, self.policy.min_password_length)

        if self.gateway.username_taken(username) or self.gateway.email_taken(email):
            raise DuplicateIdentity(_DUPLICATE_MESSAGE)

        password_hash = self.credentials.hash_password(password)
        account_id = self.gateway.create_account(username, email, password_hash)
        if account_id is None:
            # Lost the race to a concurrent registration
            raise DuplicateIdentity(_DUPLICATE_MESSAGE)
        logger.info("Account %s created for %s", account_id, username)

        code = self._issue_verification_code(account_id)

        if skip_email_verification:
            return RegistrationResult(account_id=account_id, verification_code=code)

        warning = self._send_verification(username, email, code)
        if warning is not None:
            return RegistrationResult(
                account_id=account_id,
                verification_code=code,
                warning="Account created, but verification email could not be sent. "
                "Please use the verification code provided.",
            )
        return RegistrationResult(account_id=account_id)

    def verify_email(self, email: str, code: str) -> None:
        """
        Redeem a verification code and mark the account verified.

        Raises:
            InvalidOrExpired: unknown email, wrong, expired or used code
        """
        account = self.gateway.find_active_by_email(email.strip())
        if account is None:
            logger.warning("Verification attempted for unknown email")
            raise InvalidOrExpired("Invalid or expired verification code")

        credential = self.gateway.consume_credential(
            CredentialKind.EMAIL_VERIFICATION, code.strip(), account_id=account.id
        )
        if credential is None:
            logger.warning("Verification code rejected for account %s", account.id)
            raise InvalidOrExpired("Invalid or expired verification code")

        self.gateway.mark_email_verified(account.id)
        logger.info("Email verified for account %s", account.id)

    def resend_verification(self, account_id: str) -> ResendResult:
        account = self.gateway.get_account(account_id)
        if account is None:
            raise InvalidCredentials()
        if account.email_verified:
            return ResendResult(already_verified=True)

        code = self._issue_verification_code(account.id)
        return ResendResult(
            already_verified=False,
            warning=self._send_verification(account.username, account.email, code),
        )

    def authenticate(
        self,
        username_or_email: str,
        password: str,
        client_metadata: dict[str, str] | None = None,
    ) -> LoginResult:
        """
        Password login.

        Raises:
            InvalidCredentials: unknown identifier or wrong password (identical)
            EmailNotVerified: correct password, unverified email, strict policy
        """
        account = self.gateway.find_active_by_login(username_or_email.strip())

        # Always run bcrypt, even for unknown identifiers
        password_valid = self.credentials.verify_password(
            password, account.password_hash if account is not None else None
        )

        if account is None:
            logger.warning("Login rejected: unknown identifier")
            raise InvalidCredentials()
        if not password_valid:
            logger.warning("Login rejected: password mismatch for account %s", account.id)
            raise InvalidCredentials()

        if not account.email_verified:
            if self.policy.strict_verification:
                raise EmailNotVerified()
            logger.info("Relaxed verification: auto-verifying account %s", account.id)
            self.gateway.mark_email_verified(account.id)
            account.email_verified = True

        return open_session(self.gateway, account, self.policy, client_metadata)

    def validate_session(self, token: str) -> SessionIdentity | None:
        """Resolve a session token. Unknown, expired or inactive -> None."""
        if not token:
            return None
        return self.gateway.find_session_identity(token)

    def logout(self, token: str) -> None:
        """Delete the session. Idempotent."""
        if token:
            self.gateway.delete_session(token)

    def update_profile(
        self,
        account_id: str,
        username: str | None = None,
        email: str | None = None,
    ) -> None:
        """
        Change username and/or email. A new email must be verified again.

        Raises:
            ValidationError: nothing to update or malformed values
            DuplicateIdentity: the new value belongs to another account
        """
        if not username and not email:
            raise ValidationError("Email or username is required")
        if email:
            email = validate_email(email)
            if self.gateway.email_taken(email, exclude_account_id=account_id):
                raise DuplicateIdentity("Email is already in use")
        if username:
            username = validate_username(username)
            if self.gateway.username_taken(username, exclude_account_id=account_id):
                raise DuplicateIdentity("Username is already taken")

        if not self.gateway.update_profile(account_id, username=username or None, email=email or None):
            raise DuplicateIdentity(_DUPLICATE_MESSAGE)
        logger.info("Profile updated for account %s", account_id)

    def revoke_credentials(self, account_id: str) -> None:
        """Invalidate every session and one-time credential of an account."""
        self.gateway.revoke_account_credentials(account_id)
        logger.info("Revoked sessions and tokens for account %s", account_id)

    def is_totp_enabled(self, email: str) -> bool:
        account = self.gateway.find_active_by_email(email.strip())
        return bool(account is not None and account.totp_enabled and account.totp_secret)

    def _issue_verification_code(self, account_id: str) -> str:
        code = TokenIssuer.numeric_code(VERIFICATION_CODE_LENGTH)
        self.gateway.issue_credential(
            CredentialKind.EMAIL_VERIFICATION,
            code,
            self.policy.verification_code_ttl,
            account_id=account_id,
        )
        return code

    def _send_verification(self, username: str, email: str, code: str) -> str | None:
        verify_url = self.policy.link(
            f"verify-email?email={query_value(email)}&code={query_value(code)}"
        )
        return deliver(self.notifier, email, verification_message(username, code, verify_url))
