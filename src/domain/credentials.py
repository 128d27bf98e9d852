"""
Credential primitives - CredentialStore and TokenIssuer.

Security Design - Timing Oracle Prevention:
------------------------------------------
1. **bcrypt.checkpw()**: bcrypt's comparison is constant-time and its cost
   dominates response time, masking other timing variations.

2. **dummy_hash(cost)**: When a login identifier does not exist we still
   run bcrypt against a dummy hash built at the same cost factor as real
   hashes, so "unknown user" and "wrong password" take the same time.

3. **secrets**: Every token and numeric code comes from the secrets module.
   Numeric codes are strings to preserve leading zeros.
"""

import re
import secrets
from dataclasses import dataclass
from functools import lru_cache

import bcrypt

from .exceptions import ValidationError

_DUMMY_PASSWORD = b"dummy_password_for_timing_safety"

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50


@lru_cache
def dummy_hash(cost: int) -> str:
    """Hash of a throwaway password at the given cost, compared when there is no stored hash."""
    return bcrypt.hashpw(_DUMMY_PASSWORD, bcrypt.gensalt(rounds=cost)).decode()


@dataclass(frozen=True)
class CredentialStore:
    """Password hashing and verification. Stateless apart from the cost factor."""

    cost: int = 12

    def __post_init__(self) -> None:
        # Pay for the dummy hash at construction, not on the first unknown login
        dummy_hash(self.cost)

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt at the configured cost factor."""
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.cost)).decode()

    def verify_password(self, password: str, password_hash: str | None) -> bool:
        """
        Constant-time password check.

        A missing hash is compared against the dummy hash and always fails,
        so callers can pass None for unknown accounts without a fast path.
        """
        stored = password_hash if password_hash else dummy_hash(self.cost)
        try:
            matched = bcrypt.checkpw(password.encode(), stored.encode())
        except ValueError:
            # Malformed stored hash
            return False
        return matched and password_hash is not None

    def random_password_hash(self) -> str:
        """Hash of a random password nobody knows (passwordless accounts)."""
        return self.hash_password(secrets.token_hex(16))


class TokenIssuer:
    """Opaque tokens and fixed-length numeric codes."""

    @staticmethod
    def opaque_token(num_bytes: int = 32) -> str:
        return secrets.token_hex(num_bytes)

    @staticmethod
    def numeric_code(length: int = 6) -> str:
        return "".join(secrets.choice("0123456789") for _ in range(length))


def validate_username(username: str) -> str:
    username = (username or "").strip()
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )
    # Username and email namespaces stay disjoint for login lookups
    if "@" in username:
        raise ValidationError("Username cannot contain @")
    return username


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not _EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def validate_password_length(password: str, min_length: int) -> None:
    if len(password or "") < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long")


def validate_password_strength(password: str, min_length: int) -> None:
    """
    Registration password policy.

    Length first, then one each of: uppercase, lowercase, digit, special.
    The first failing rule is reported.
    """
    validate_password_length(password, min_length)
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not _SPECIAL_CHARACTERS.search(password):
        raise ValidationError(
            "Password must contain at least one special character (!@#$%^&* etc.)"
        )
