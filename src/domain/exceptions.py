"""
Domain exceptions - Semantic error types for the authentication core.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Credential failures (InvalidCredentials, InvalidOrExpired) are deliberately
generic: "not found", "wrong secret", "expired" and "already used" all
surface as the same exception with the same message. The distinction is
kept in logs only.
"""


class AuthError(Exception):
    """Base class for authentication domain errors."""

    pass


class ValidationError(AuthError):
    """Malformed input. Safe to show the detail to the caller."""

    pass


class DuplicateIdentity(AuthError):
    """Username or email is already taken."""

    pass


class InvalidCredentials(AuthError):
    """Login identifier or secret did not verify."""

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class EmailNotVerified(InvalidCredentials):
    """Password was correct but the email address is not verified yet."""

    def __init__(self, message: str = "Please verify your email address before logging in") -> None:
        super().__init__(message)


class InvalidTotpCode(InvalidCredentials):
    """Submitted TOTP code did not verify."""

    def __init__(self, message: str = "Invalid TOTP code") -> None:
        super().__init__(message)


class InvalidOrExpired(AuthError):
    """One-time credential missing, wrong, expired or already used."""

    def __init__(self, message: str = "Invalid or expired") -> None:
        super().__init__(message)


class TotpNotSetUp(ValidationError):
    """TOTP confirmation attempted before a secret was provisioned."""

    def __init__(self, message: str = "TOTP not set up. Please set it up first.") -> None:
        super().__init__(message)


class NotConfigured(AuthError):
    """A required collaborator (store, notifier) is unavailable."""

    pass


class PersistenceFailure(AuthError):
    """Unexpected error from the persistence layer."""

    pass
