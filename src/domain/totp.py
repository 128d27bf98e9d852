"""
TOTP domain service - second-factor enrollment and challenges.

States of an account's TOTP setup:

    none        secret=NULL, enabled=false
    unconfirmed secret=set,  enabled=false   (after setup_secret)
    enabled     secret=set,  enabled=true    (after confirm_and_enable)

disable() always returns to "none": the flag and the secret are cleared
together, so an explicit disable never leaves a dangling secret.
"""

import base64
import io
import logging
from dataclasses import dataclass, field

import pyotp
import qrcode

from .exceptions import InvalidCredentials, InvalidTotpCode, TotpNotSetUp
from .identity import require_collaborators
from .models import TotpSetup
from .policy import AuthPolicy
from .ports import PersistenceGateway

logger = logging.getLogger(__name__)


def render_qr_data_url(payload: str) -> str:
    """Render a payload as a PNG QR code data URL."""
    image = qrcode.make(payload)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"


@dataclass
class TotpService:
    """Provisions, confirms, checks and removes TOTP secrets."""

    gateway: PersistenceGateway
    policy: AuthPolicy = field(default_factory=AuthPolicy)

    def __post_init__(self) -> None:
        require_collaborators(self, gateway=self.gateway)

    def setup_secret(self, account_id: str) -> TotpSetup:
        """
        Generate and store a new, not yet enabled, secret.

        Overwrites any previous unconfirmed secret.

        Raises:
            InvalidCredentials: no such account
        """
        account = self.gateway.get_account(account_id)
        if account is None:
            raise InvalidCredentials("Account not found")

        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(
            name=account.email, issuer_name=self.policy.totp_issuer
        )
        if not self.gateway.store_totp_secret(account.id, secret):
            raise InvalidCredentials("Account not found")

        logger.info("TOTP secret provisioned for account %s", account.id)
        return TotpSetup(secret=secret, provisioning_uri=uri, qr_code=render_qr_data_url(uri))

    def confirm_and_enable(self, account_id: str, code: str) -> None:
        """
        Verify the first code from the authenticator app and enable TOTP.

        Raises:
            TotpNotSetUp: no secret has been provisioned
            InvalidTotpCode: code does not match the stored secret
        """
        account = self.gateway.get_account(account_id)
        if account is None or not account.totp_secret:
            raise TotpNotSetUp()

        if not self._verify(account.totp_secret, code):
            logger.warning("TOTP confirmation failed for account %s", account.id)
            raise InvalidTotpCode()

        if not self.gateway.enable_totp(account.id):
            # Secret was cleared between read and write
            raise TotpNotSetUp()
        logger.info("TOTP enabled for account %s", account.id)

    def verify_challenge(self, email: str, code: str) -> bool:
        """
        Check a code for an account with TOTP enabled.

        Unknown accounts and accounts without enabled TOTP return False.
        """
        account = self.gateway.find_active_by_email(email.strip())
        if account is None or not account.totp_enabled or not account.totp_secret:
            return False
        return self._verify(account.totp_secret, code)

    def disable(self, account_id: str) -> None:
        self.gateway.clear_totp(account_id)
        logger.info("TOTP disabled for account %s", account_id)

    def _verify(self, secret: str, code: str) -> bool:
        code = (code or "").strip()
        if not code.isdigit():
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=self.policy.totp_valid_window)
