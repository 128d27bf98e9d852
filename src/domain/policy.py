"""
Security policy - Values injected into every service at composition time.

The domain never reads environment variables; the container builds an
AuthPolicy from Settings and hands the same instance to each service.
"""

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class AuthPolicy:
    """
    Tunable lifetimes and flags for the authentication core.

    strict_verification:
        True  - unverified accounts cannot log in (production behaviour)
        False - a successful password login auto-verifies the email
    access_code_single_use:
        False - event access codes can be re-entered until they expire
        True  - an access code is consumed by its first redemption
    """

    strict_verification: bool = True
    base_url: str = "http://localhost:3000"
    bcrypt_cost: int = 12
    min_password_length: int = 8
    session_ttl: timedelta = timedelta(days=7)
    verification_code_ttl: timedelta = timedelta(hours=24)
    magic_link_ttl: timedelta = timedelta(hours=1)
    password_reset_ttl: timedelta = timedelta(hours=1)
    access_code_ttl: timedelta = timedelta(days=7)
    access_code_single_use: bool = False
    totp_issuer: str = "OwlRSVP"
    totp_valid_window: int = 1

    def link(self, path: str) -> str:
        """Absolute URL for a path under base_url."""
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
