"""
Domain records - Plain data exchanged between services and the gateway.

Records are dataclasses with no behaviour beyond projection helpers.
Secrets (password hash, TOTP secret) live only on Account and are
stripped by Account.view() before anything leaves the core.
"""

from dataclasses import dataclass, field
from datetime import datetime

from .ports import CredentialKind, SubscriptionStatus, SubscriptionTier


@dataclass
class Account:
    """A registered identity as stored by the persistence gateway."""

    id: str
    username: str
    email: str
    password_hash: str
    email_verified: bool = False
    subscription_tier: str = SubscriptionTier.FREE.value
    subscription_status: str = SubscriptionStatus.ACTIVE.value
    events_created_count: int = 0
    totp_secret: str | None = None
    totp_enabled: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    last_login: datetime | None = None

    def view(self) -> "AccountView":
        """Project to the caller-safe view (no hash, no TOTP secret)."""
        return AccountView(
            id=self.id,
            username=self.username,
            email=self.email,
            email_verified=self.email_verified,
            subscription_tier=self.subscription_tier,
            subscription_status=self.subscription_status,
            events_created_count=self.events_created_count,
            totp_enabled=self.totp_enabled,
            created_at=self.created_at,
            last_login=self.last_login,
        )


@dataclass(frozen=True)
class AccountView:
    """Account without any credential material."""

    id: str
    username: str
    email: str
    email_verified: bool
    subscription_tier: str
    subscription_status: str
    events_created_count: int
    totp_enabled: bool
    created_at: datetime | None = None
    last_login: datetime | None = None


@dataclass(frozen=True)
class SessionIdentity:
    """Minimal identity resolved from a valid session token."""

    account_id: str
    username: str
    email: str
    subscription_tier: str


@dataclass(frozen=True)
class OneTimeCredential:
    """Single-use, time-boxed secret bound to an account and/or event."""

    kind: CredentialKind
    secret: str
    expires_at: datetime
    account_id: str | None = None
    event_id: str | None = None
    email: str | None = None
    requires_totp: bool = False
    used: bool = False


@dataclass(frozen=True)
class EventRecord:
    """The slice of an event this core needs for access control."""

    id: str
    title: str
    admin_token: str
    created_by_account_id: str | None = None


@dataclass(frozen=True)
class RegistrationResult:
    account_id: str
    verification_code: str | None = None
    warning: str | None = None


@dataclass(frozen=True)
class LoginResult:
    """Successful password or magic-link login."""

    account: AccountView
    session_token: str

    @property
    def totp_required(self) -> bool:
        # Second-factor enforcement is the caller's decision.
        return self.account.totp_enabled


@dataclass(frozen=True)
class ResendResult:
    already_verified: bool
    warning: str | None = None


@dataclass(frozen=True)
class AccessCodeIssued:
    access_code: str
    expires_at: datetime
    warning: str | None = None


@dataclass(frozen=True)
class EventAccessGrant:
    event_id: str
    event_title: str
    admin_token: str
    access_code: str
    expires_at: datetime


@dataclass(frozen=True)
class AdminTokenGrant:
    event_id: str
    is_owned_by_registered_admin: bool


@dataclass(frozen=True)
class TotpSetup:
    """Enrollment material returned by TotpService.setup_secret."""

    secret: str
    provisioning_uri: str
    qr_code: str = field(repr=False)


@dataclass(frozen=True)
class ResetRequest:
    requires_totp: bool
