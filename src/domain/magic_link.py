"""
Magic-link domain service - passwordless login.

issue() always looks successful to the caller, whether or not an account
existed for the address. A first-time address gets a shadow account with
an unusable random password, already marked email-verified: receiving the
link proves control of the mailbox.
"""

import logging
import secrets
from dataclasses import dataclass, field

from .credentials import (
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    CredentialStore,
    TokenIssuer,
    validate_email,
)
from .exceptions import InvalidOrExpired
from .identity import open_session, require_collaborators
from .messages import deliver, magic_link_message, query_value
from .models import Account, LoginResult
from .policy import AuthPolicy
from .ports import CredentialKind, Notifier, PersistenceGateway

logger = logging.getLogger(__name__)

MAGIC_LINK_TOKEN_BYTES = 32
_SHADOW_USERNAME_ATTEMPTS = 3


@dataclass
class MagicLinkService:
    """Issues and redeems single-use, time-boxed login links."""

    gateway: PersistenceGateway
    notifier: Notifier
    policy: AuthPolicy = field(default_factory=AuthPolicy)

    def __post_init__(self) -> None:
        require_collaborators(self, gateway=self.gateway, notifier=self.notifier)
        self.credentials = CredentialStore(cost=self.policy.bcrypt_cost)

    def issue(self, email: str) -> None:
        """
        Email a one-hour login link, provisioning an account on first use.

        Raises:
            ValidationError: malformed email address
        """
        email = validate_email(email)
        account = self.gateway.find_active_by_email(email)
        if account is None:
            account = self._provision_shadow_account(email)
            if account is None:
                # Address belongs to an inactive account; stay silent
                return

        token = TokenIssuer.opaque_token(MAGIC_LINK_TOKEN_BYTES)
        self.gateway.issue_credential(
            CredentialKind.MAGIC_LINK,
            token,
            self.policy.magic_link_ttl,
            account_id=account.id,
        )
        url = self.policy.link(f"magic-login?token={query_value(token)}")
        deliver(self.notifier, email, magic_link_message(account.username, url))

    def redeem(self, token: str, client_metadata: dict[str, str] | None = None) -> LoginResult:
        """
        Exchange a magic-link token for a session.

        Raises:
            InvalidOrExpired: unknown, expired or already used token
        """
        credential = self.gateway.consume_credential(CredentialKind.MAGIC_LINK, token)
        if credential is None or credential.account_id is None:
            logger.warning("Magic link rejected")
            raise InvalidOrExpired("Invalid or expired magic link")

        account = self.gateway.get_account(credential.account_id)
        if account is None or not account.is_active:
            logger.warning("Magic link redeemed for missing or inactive account")
            raise InvalidOrExpired("Invalid or expired magic link")

        return open_session(self.gateway, account, self.policy, client_metadata)

    def _provision_shadow_account(self, email: str) -> Account | None:
        password_hash = self.credentials.random_password_hash()
        local_part = email.split("@")[0][:USERNAME_MAX_LENGTH]
        candidates = [local_part] if len(local_part) >= USERNAME_MIN_LENGTH else []
        candidates += [
            f"user_{secrets.token_hex(4)}" for _ in range(_SHADOW_USERNAME_ATTEMPTS)
        ]

        for username in candidates:
            if self.gateway.email_taken(email):
                return None
            account_id = self.gateway.create_account(
                username, email, password_hash, email_verified=True
            )
            if account_id is not None:
                logger.info("Provisioned passwordless account %s", account_id)
                return self.gateway.get_account(account_id)

        logger.error("Could not provision a username for magic-link signup")
        return None
