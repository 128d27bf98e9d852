"""
Shared fixtures for adversarial tests.

Attacks run against the in-memory backend so they need no database; the
Postgres adapter's atomicity is covered in tests/integration.
"""

import pytest

from src.adapters.repository.memory import InMemoryGateway
from src.container import AuthCore, build_core
from src.domain.policy import AuthPolicy
from tests.conftest import RecordingNotifier


@pytest.fixture
def attack_gateway() -> InMemoryGateway:
    """Gateway on the real clock, shared by every attacker thread."""
    return InMemoryGateway()


@pytest.fixture
def attack_core(attack_gateway: InMemoryGateway) -> AuthCore:
    return build_core(
        attack_gateway, RecordingNotifier(), AuthPolicy(strict_verification=True, bcrypt_cost=4)
    )
