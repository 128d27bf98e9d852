"""
Unit tests for TotpService.

Codes are produced with pyotp from the provisioned secret, the way an
authenticator app would.
"""

import base64

import pyotp
import pytest

from src.adapters.repository.memory import InMemoryGateway
from src.container import AuthCore
from src.domain.exceptions import InvalidCredentials, InvalidTotpCode, TotpNotSetUp
from src.domain.totp import render_qr_data_url


def wrong_code(secret: str) -> str:
    current = pyotp.TOTP(secret).now()
    return f"{(int(current) + 500000) % 1000000:06d}"


class TestSetup:
    def test_returns_secret_uri_and_qr(self, core: AuthCore, registered) -> None:
        setup = core.totp.setup_secret(registered.account_id)

        assert len(setup.secret) >= 16
        assert setup.provisioning_uri.startswith("otpauth://totp/")
        assert "issuer=OwlRSVP" in setup.provisioning_uri
        assert setup.qr_code.startswith("data:image/png;base64,")

    def test_secret_stored_but_not_enabled(
        self, core: AuthCore, registered, gateway: InMemoryGateway
    ) -> None:
        setup = core.totp.setup_secret(registered.account_id)

        account = gateway.get_account(registered.account_id)
        assert account.totp_secret == setup.secret
        assert account.totp_enabled is False

    def test_setup_overwrites_unconfirmed_secret(
        self, core: AuthCore, registered, gateway: InMemoryGateway
    ) -> None:
        core.totp.setup_secret(registered.account_id)
        second = core.totp.setup_secret(registered.account_id)

        assert gateway.get_account(registered.account_id).totp_secret == second.secret

    def test_unknown_account(self, core: AuthCore) -> None:
        with pytest.raises(InvalidCredentials):
            core.totp.setup_secret("missing")


class TestConfirm:
    def test_correct_code_enables(
        self, core: AuthCore, registered, gateway: InMemoryGateway
    ) -> None:
        setup = core.totp.setup_secret(registered.account_id)

        core.totp.confirm_and_enable(registered.account_id, pyotp.TOTP(setup.secret).now())

        assert gateway.get_account(registered.account_id).totp_enabled is True

    def test_wrong_code_keeps_disabled(
        self, core: AuthCore, registered, gateway: InMemoryGateway
    ) -> None:
        setup = core.totp.setup_secret(registered.account_id)

        with pytest.raises(InvalidTotpCode):
            core.totp.confirm_and_enable(registered.account_id, wrong_code(setup.secret))

        assert gateway.get_account(registered.account_id).totp_enabled is False

    def test_without_setup(self, core: AuthCore, registered) -> None:
        with pytest.raises(TotpNotSetUp):
            core.totp.confirm_and_enable(registered.account_id, "123456")

    @pytest.mark.parametrize("code", ["", "abcdef", "12 34"])
    def test_non_numeric_code(self, core: AuthCore, registered, code: str) -> None:
        core.totp.setup_secret(registered.account_id)

        with pytest.raises(InvalidTotpCode):
            core.totp.confirm_and_enable(registered.account_id, code)


class TestChallenge:
    def enable(self, core: AuthCore, account_id: str) -> str:
        setup = core.totp.setup_secret(account_id)
        core.totp.confirm_and_enable(account_id, pyotp.TOTP(setup.secret).now())
        return setup.secret

    def test_valid_code(self, core: AuthCore, registered) -> None:
        secret = self.enable(core, registered.account_id)

        assert core.totp.verify_challenge("a@x.com", pyotp.TOTP(secret).now()) is True

    def test_wrong_code(self, core: AuthCore, registered) -> None:
        secret = self.enable(core, registered.account_id)

        assert core.totp.verify_challenge("a@x.com", wrong_code(secret)) is False

    def test_unconfirmed_secret_is_not_a_challenge(self, core: AuthCore, registered) -> None:
        setup = core.totp.setup_secret(registered.account_id)

        assert core.totp.verify_challenge("a@x.com", pyotp.TOTP(setup.secret).now()) is False

    def test_unknown_email(self, core: AuthCore) -> None:
        assert core.totp.verify_challenge("ghost@x.com", "123456") is False

    def test_disable_clears_secret(
        self, core: AuthCore, registered, gateway: InMemoryGateway
    ) -> None:
        secret = self.enable(core, registered.account_id)

        core.totp.disable(registered.account_id)

        account = gateway.get_account(registered.account_id)
        assert account.totp_enabled is False
        assert account.totp_secret is None
        assert core.totp.verify_challenge("a@x.com", pyotp.TOTP(secret).now()) is False


def test_qr_data_url_is_png() -> None:
    url = render_qr_data_url("otpauth://totp/OwlRSVP:a%40x.com?secret=JBSWY3DPEHPK3PXP")

    payload = base64.b64decode(url.removeprefix("data:image/png;base64,"))
    assert payload.startswith(b"\x89PNG")
