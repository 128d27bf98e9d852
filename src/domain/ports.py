"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.

Time is owned by the gateway: services pass lifetimes (timedelta) and the
gateway stamps and compares expiry against its own clock (database NOW()
for Postgres). Expiry is enforced at read time; nothing sweeps rows.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import Account, EventRecord, OneTimeCredential, SessionIdentity


class SubscriptionTier(str, Enum):
    """Named subscription levels. Unknown names resolve to FREE."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


class CredentialKind(str, Enum):
    """
    Discriminator for the shared one-time credential table.

    All kinds share one redemption rule: used=false AND now < expires_at,
    and redemption flips used=true in the same atomic statement.
    """

    EMAIL_VERIFICATION = "email_verification"
    MAGIC_LINK = "magic_link"
    PASSWORD_RESET = "password_reset"
    EVENT_ACCESS = "event_access"


class AccountRepository(Protocol):
    """Port interface for account persistence."""

    def create_account(
        self,
        username: str,
        email: str,
        password_hash: str,
        email_verified: bool = False,
    ) -> str | None:
        """
        Insert a new account.

        The store enforces uniqueness of username and email. A constraint
        violation is reported as None, never raised.

        Returns:
            The new account id, or None if username or email is taken
        """
        ...

    def username_taken(self, username: str, exclude_account_id: str | None = None) -> bool: ...

    def email_taken(self, email: str, exclude_account_id: str | None = None) -> bool: ...

    def get_account(self, account_id: str) -> Account | None: ...

    def find_active_by_login(self, username_or_email: str) -> Account | None:
        """Find an active account whose username OR email equals the identifier."""
        ...

    def find_active_by_email(self, email: str) -> Account | None: ...

    def mark_email_verified(self, account_id: str) -> None: ...

    def touch_last_login(self, account_id: str) -> None: ...

    def update_password_hash(self, account_id: str, password_hash: str) -> None: ...

    def update_profile(
        self,
        account_id: str,
        username: str | None = None,
        email: str | None = None,
    ) -> bool:
        """
        Change username and/or email. Changing the email clears email_verified.

        Returns:
            True on success, False on a uniqueness conflict
        """
        ...

    def store_totp_secret(self, account_id: str, secret: str) -> bool:
        """Store an unconfirmed secret (totp_enabled=false). False if no such account."""
        ...

    def enable_totp(self, account_id: str) -> bool:
        """Set totp_enabled=true only where a secret is present."""
        ...

    def clear_totp(self, account_id: str) -> None:
        """Atomically set totp_enabled=false and totp_secret=NULL."""
        ...


class SessionRepository(Protocol):
    """Port interface for server-side sessions."""

    def create_session(
        self,
        account_id: str,
        token: str,
        ttl: timedelta,
        client_metadata: dict[str, str] | None = None,
    ) -> None: ...

    def find_session_identity(self, token: str) -> SessionIdentity | None:
        """Resolve an unexpired session whose account is active, else None."""
        ...

    def delete_session(self, token: str) -> None:
        """Delete a session. Deleting an unknown token is not an error."""
        ...


class CredentialRepository(Protocol):
    """Port interface for one-time credentials."""

    def issue_credential(
        self,
        kind: CredentialKind,
        secret: str,
        ttl: timedelta,
        *,
        account_id: str | None = None,
        event_id: str | None = None,
        email: str | None = None,
        requires_totp: bool = False,
    ) -> OneTimeCredential: ...

    def consume_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        account_id: str | None = None,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        """
        Atomically redeem a credential.

        Matches kind + secret (+ account_id / event_id when given) where
        used=false and expires_at > now, and sets used=true in the same
        operation. Two concurrent calls for the same secret can never both
        return a credential.

        Returns:
            The credential as it was before redemption, or None
        """
        ...

    def find_valid_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        """Read-only lookup of an unused, unexpired credential."""
        ...

    def revoke_account_credentials(self, account_id: str) -> None:
        """Delete every session and one-time credential referencing the account."""
        ...


class EventRepository(Protocol):
    """Port interface for the event rows this core reads."""

    def get_event(self, event_id: str) -> EventRecord | None: ...

    def find_event_by_admin_token(self, admin_token: str) -> EventRecord | None: ...


class PersistenceGateway(
    AccountRepository, SessionRepository, CredentialRepository, EventRepository, Protocol
):
    """Everything the services need from the durable store."""


class Notifier(Protocol):
    """Port interface for message delivery."""

    def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        """
        Deliver a message.

        Raises on delivery failure. Callers treat failures as soft: logged,
        surfaced as a warning, never a reason to unwind the operation.
        """
        ...
