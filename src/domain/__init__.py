"""
Domain layer - Pure business logic with zero framework imports.

This package contains the authentication and access-control core:
credential issuance, verification, session lifecycle and entitlement
resolution. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .credentials import CredentialStore, TokenIssuer
from .event_access import EventAccessService
from .exceptions import (
    AuthError,
    DuplicateIdentity,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpired,
    InvalidTotpCode,
    NotConfigured,
    PersistenceFailure,
    TotpNotSetUp,
    ValidationError,
)
from .identity import IdentityService
from .magic_link import MagicLinkService
from .policy import AuthPolicy
from .ports import (
    CredentialKind,
    Notifier,
    PersistenceGateway,
    SubscriptionStatus,
    SubscriptionTier,
)
from .recovery import PasswordRecoveryService
from .totp import TotpService

__all__ = [
    "AuthError",
    "AuthPolicy",
    "CredentialKind",
    "CredentialStore",
    "DuplicateIdentity",
    "EmailNotVerified",
    "EventAccessService",
    "IdentityService",
    "InvalidCredentials",
    "InvalidOrExpired",
    "InvalidTotpCode",
    "MagicLinkService",
    "NotConfigured",
    "Notifier",
    "PasswordRecoveryService",
    "PersistenceFailure",
    "PersistenceGateway",
    "SubscriptionStatus",
    "SubscriptionTier",
    "TokenIssuer",
    "TotpNotSetUp",
    "TotpService",
    "ValidationError",
]
