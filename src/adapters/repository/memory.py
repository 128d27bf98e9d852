"""
In-memory repository adapter - Implements PersistenceGateway.

Thread-safe process-local store used for development (storage_backend=memory)
and for tests. A single lock guards every operation, which gives the same
guarantees the Postgres adapter gets from constraints and conditional
UPDATEs: unique username/email, and at-most-once credential redemption.

Expiry is compared against an injectable clock so tests can move time.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from src.domain.models import Account, EventRecord, OneTimeCredential, SessionIdentity
from src.domain.ports import CredentialKind

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _SessionRow:
    account_id: str
    expires_at: datetime
    client_metadata: dict[str, str] | None
    created_at: datetime


class InMemoryGateway:
    """
    Implements PersistenceGateway protocol with dictionaries.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Records are copied on the way in and out so callers never alias rows.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._accounts: dict[str, Account] = {}
        self._sessions: dict[str, _SessionRow] = {}
        self._credentials: list[OneTimeCredential] = []
        self._events: dict[str, EventRecord] = {}

    # Accounts

    def create_account(
        self,
        username: str,
        email: str,
        password_hash: str,
        email_verified: bool = False,
    ) -> str | None:
        with self._lock:
            if self._username_taken(username, None) or self._email_taken(email, None):
                return None
            account_id = str(uuid.uuid4())
            self._accounts[account_id] = Account(
                id=account_id,
                username=username,
                email=email,
                password_hash=password_hash,
                email_verified=email_verified,
                created_at=self._clock(),
            )
            return account_id

    def username_taken(self, username: str, exclude_account_id: str | None = None) -> bool:
        with self._lock:
            return self._username_taken(username, exclude_account_id)

    def email_taken(self, email: str, exclude_account_id: str | None = None) -> bool:
        with self._lock:
            return self._email_taken(email, exclude_account_id)

    def get_account(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account is not None else None

    def find_active_by_login(self, username_or_email: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.is_active and username_or_email in (account.username, account.email):
                    return replace(account)
            return None

    def find_active_by_email(self, email: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.is_active and account.email == email:
                    return replace(account)
            return None

    def mark_email_verified(self, account_id: str) -> None:
        self._update(account_id, email_verified=True)

    def touch_last_login(self, account_id: str) -> None:
        self._update(account_id, last_login=self._clock())

    def update_password_hash(self, account_id: str, password_hash: str) -> None:
        self._update(account_id, password_hash=password_hash)

    def update_profile(
        self,
        account_id: str,
        username: str | None = None,
        email: str | None = None,
    ) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            if username is not None and self._username_taken(username, account_id):
                return False
            if email is not None and self._email_taken(email, account_id):
                return False
            if username is not None:
                account.username = username
            if email is not None and email != account.email:
                account.email = email
                account.email_verified = False
            return True

    def store_totp_secret(self, account_id: str, secret: str) -> bool:
        return self._update(account_id, totp_secret=secret, totp_enabled=False)

    def enable_totp(self, account_id: str) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None or not account.totp_secret:
                return False
            account.totp_enabled = True
            return True

    def clear_totp(self, account_id: str) -> None:
        self._update(account_id, totp_secret=None, totp_enabled=False)

    def set_active(self, account_id: str, is_active: bool) -> None:
        """Deactivation is driven from outside the core."""
        self._update(account_id, is_active=is_active)

    def set_subscription_tier(self, account_id: str, tier: str) -> None:
        """Tier changes arrive from billing events outside the core."""
        self._update(account_id, subscription_tier=tier)

    # Sessions

    def create_session(
        self,
        account_id: str,
        token: str,
        ttl: timedelta,
        client_metadata: dict[str, str] | None = None,
    ) -> None:
        now = self._clock()
        with self._lock:
            self._sessions[token] = _SessionRow(
                account_id=account_id,
                expires_at=now + ttl,
                client_metadata=dict(client_metadata) if client_metadata else None,
                created_at=now,
            )

    def find_session_identity(self, token: str) -> SessionIdentity | None:
        with self._lock:
            session = self._sessions.get(token)
            if session is None or session.expires_at <= self._clock():
                return None
            account = self._accounts.get(session.account_id)
            if account is None or not account.is_active:
                return None
            return SessionIdentity(
                account_id=account.id,
                username=account.username,
                email=account.email,
                subscription_tier=account.subscription_tier,
            )

    def delete_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    # One-time credentials

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
    ) -> OneTimeCredential:
        credential = OneTimeCredential(
            kind=kind,
            secret=secret,
            expires_at=self._clock() + ttl,
            account_id=account_id,
            event_id=event_id,
            email=email,
            requires_totp=requires_totp,
        )
        with self._lock:
            self._credentials.append(credential)
        return credential

    def consume_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        account_id: str | None = None,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        with self._lock:
            index = self._find_valid(kind, secret, account_id, event_id)
            if index is None:
                return None
            credential = self._credentials[index]
            self._credentials[index] = replace(credential, used=True)
            return credential

    def find_valid_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        with self._lock:
            index = self._find_valid(kind, secret, None, event_id)
            return self._credentials[index] if index is not None else None

    def revoke_account_credentials(self, account_id: str) -> None:
        with self._lock:
            self._sessions = {
                token: row for token, row in self._sessions.items() if row.account_id != account_id
            }
            self._credentials = [c for c in self._credentials if c.account_id != account_id]

    # Events

    def add_event(
        self,
        title: str,
        admin_token: str,
        created_by_account_id: str | None = None,
    ) -> EventRecord:
        """Events are created outside the core; this seeds them locally."""
        event = EventRecord(
            id=str(uuid.uuid4()),
            title=title,
            admin_token=admin_token,
            created_by_account_id=created_by_account_id,
        )
        with self._lock:
            self._events[event.id] = event
        return event

    def get_event(self, event_id: str) -> EventRecord | None:
        with self._lock:
            return self._events.get(event_id)

    def find_event_by_admin_token(self, admin_token: str) -> EventRecord | None:
        with self._lock:
            for event in self._events.values():
                if event.admin_token == admin_token:
                    return event
            return None

    # Internals (caller holds the lock)

    def _username_taken(self, username: str, exclude_account_id: str | None) -> bool:
        return any(
            a.username == username and a.id != exclude_account_id for a in self._accounts.values()
        )

    def _email_taken(self, email: str, exclude_account_id: str | None) -> bool:
        return any(a.email == email and a.id != exclude_account_id for a in self._accounts.values())

    def _find_valid(
        self,
        kind: CredentialKind,
        secret: str,
        account_id: str | None,
        event_id: str | None,
    ) -> int | None:
        now = self._clock()
        # Newest first, like the Postgres adapter
        for index in reversed(range(len(self._credentials))):
            credential = self._credentials[index]
            if (
                credential.kind == kind
                and credential.secret == secret
                and not credential.used
                and credential.expires_at > now
                and (account_id is None or credential.account_id == account_id)
                and (event_id is None or credential.event_id == event_id)
            ):
                return index
        return None

    def _update(self, account_id: str, **fields: object) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            for name, value in fields.items():
                setattr(account, name, value)
            return True
