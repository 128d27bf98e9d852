"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock and the in-memory gateway bound to it
- A recording notifier (optionally failing)
- Domain services wired the way the container wires them
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from src.adapters.repository.memory import InMemoryGateway
from src.container import AuthCore, build_core
from src.domain.models import RegistrationResult
from src.domain.policy import AuthPolicy

STRONG_PASSWORD = "Passw0rd!"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass(frozen=True)
class SentMessage:
    to_address: str
    subject: str
    html_body: str
    text_body: str


class RecordingNotifier:
    """Notifier double that keeps every message, or raises when failing."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.failing = False

    def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        if self.failing:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append(SentMessage(to_address, subject, html_body, text_body))

    def last_token(self) -> str:
        """Opaque token from the most recent link."""
        match = re.search(r"token=([0-9a-f]{64})", self.sent[-1].text_body)
        assert match is not None, self.sent[-1].text_body
        return match.group(1)

    def last_code(self) -> str:
        match = re.search(r"\b(\d{6})\b", self.sent[-1].text_body)
        assert match is not None, self.sent[-1].text_body
        return match.group(1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(clock: FakeClock) -> InMemoryGateway:
    return InMemoryGateway(clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def policy() -> AuthPolicy:
    """Strict policy with the cheapest bcrypt cost."""
    return AuthPolicy(strict_verification=True, bcrypt_cost=4)


@pytest.fixture
def core(gateway: InMemoryGateway, notifier: RecordingNotifier, policy: AuthPolicy) -> AuthCore:
    return build_core(gateway, notifier, policy)


@pytest.fixture
def relaxed_core(gateway: InMemoryGateway, notifier: RecordingNotifier) -> AuthCore:
    return build_core(gateway, notifier, AuthPolicy(strict_verification=False, bcrypt_cost=4))


@pytest.fixture
def registered(core: AuthCore) -> RegistrationResult:
    """Account 'alice' registered and verified."""
    result = core.identity.register("alice", "a@x.com", STRONG_PASSWORD, skip_email_verification=True)
    core.identity.verify_email("a@x.com", result.verification_code)
    return result
