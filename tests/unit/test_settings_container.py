"""
Unit tests for settings loading and the composition root.

Settings are built directly (not through the cached get_settings) so
environment variables from one test never leak into another.
"""

from datetime import timedelta

import pydantic
import pytest

from src.config.settings import Settings
from src.container import AuthCore, open_core, policy_from_settings
from src.domain.exceptions import NotConfigured
from tests.conftest import STRONG_PASSWORD, RecordingNotifier


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.storage_backend == "postgres"
        assert settings.strict_verification is True
        assert settings.bcrypt_cost == 12
        assert settings.access_code_single_use is False

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("STRICT_VERIFICATION", "false")
        monkeypatch.setenv("BCRYPT_COST", "4")

        settings = Settings(_env_file=None)

        assert settings.storage_backend == "memory"
        assert settings.strict_verification is False
        assert settings.bcrypt_cost == 4

    def test_bcrypt_cost_bounds(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None, bcrypt_cost=3)

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None, storage_backend="sqlite")


class TestPolicyFromSettings:
    def test_lifetimes_converted(self) -> None:
        policy = policy_from_settings(Settings(_env_file=None))

        assert policy.session_ttl == timedelta(days=7)
        assert policy.verification_code_ttl == timedelta(hours=24)
        assert policy.magic_link_ttl == timedelta(hours=1)
        assert policy.password_reset_ttl == timedelta(hours=1)
        assert policy.access_code_ttl == timedelta(days=7)

    def test_links_use_base_url(self) -> None:
        policy = policy_from_settings(Settings(_env_file=None, base_url="https://owl.example/"))

        assert policy.link("/magic-login?token=t") == "https://owl.example/magic-login?token=t"


class TestOpenCore:
    def test_memory_backend(self) -> None:
        settings = Settings(_env_file=None, storage_backend="memory", bcrypt_cost=4)
        notifier = RecordingNotifier()

        with open_core(settings, notifier) as core:
            assert isinstance(core, AuthCore)
            result = core.identity.register("alice", "a@x.com", STRONG_PASSWORD)
            core.identity.verify_email("a@x.com", notifier.last_code())
            assert core.identity.authenticate("alice", STRONG_PASSWORD).account.id == result.account_id

    def test_postgres_backend_requires_url(self) -> None:
        settings = Settings(_env_file=None, database_url=None)

        with pytest.raises(NotConfigured):
            with open_core(settings):
                pass
