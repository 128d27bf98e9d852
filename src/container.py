"""
Composition root - Wires adapters and domain services.

Route handlers receive an AuthCore and call its services; nothing in the
domain reaches for global state. A missing collaborator is detected here,
once, at construction time.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from psycopg_pool import ConnectionPool

from src.adapters.repository.memory import InMemoryGateway
from src.adapters.repository.postgres import PostgresGateway, run_migrations
from src.adapters.smtp.console import ConsoleNotifier
from src.config.settings import Settings, get_settings
from src.domain.event_access import EventAccessService
from src.domain.exceptions import NotConfigured
from src.domain.identity import IdentityService
from src.domain.magic_link import MagicLinkService
from src.domain.policy import AuthPolicy
from src.domain.ports import Notifier, PersistenceGateway
from src.domain.recovery import PasswordRecoveryService
from src.domain.totp import TotpService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthCore:
    """Every service of the authentication core, sharing one gateway."""

    identity: IdentityService
    magic_links: MagicLinkService
    event_access: EventAccessService
    totp: TotpService
    recovery: PasswordRecoveryService


def policy_from_settings(settings: Settings) -> AuthPolicy:
    return AuthPolicy(
        strict_verification=settings.strict_verification,
        base_url=settings.base_url,
        bcrypt_cost=settings.bcrypt_cost,
        min_password_length=settings.min_password_length,
        session_ttl=timedelta(hours=settings.session_ttl_hours),
        verification_code_ttl=timedelta(hours=settings.verification_code_ttl_hours),
        magic_link_ttl=timedelta(minutes=settings.magic_link_ttl_minutes),
        password_reset_ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
        access_code_ttl=timedelta(days=settings.access_code_ttl_days),
        access_code_single_use=settings.access_code_single_use,
        totp_issuer=settings.totp_issuer,
        totp_valid_window=settings.totp_valid_window,
    )


def build_core(gateway: PersistenceGateway, notifier: Notifier, policy: AuthPolicy) -> AuthCore:
    """Create every service around the given collaborators."""
    totp = TotpService(gateway=gateway, policy=policy)
    return AuthCore(
        identity=IdentityService(gateway=gateway, notifier=notifier, policy=policy),
        magic_links=MagicLinkService(gateway=gateway, notifier=notifier, policy=policy),
        event_access=EventAccessService(gateway=gateway, notifier=notifier, policy=policy),
        totp=totp,
        recovery=PasswordRecoveryService(
            gateway=gateway, notifier=notifier, totp=totp, policy=policy
        ),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@contextmanager
def open_core(
    settings: Settings | None = None,
    notifier: Notifier | None = None,
) -> Iterator[AuthCore]:
    """
    Context manager owning the storage lifecycle.

    Manages startup and shutdown:
    - Creates the database connection pool (postgres backend)
    - Runs migrations
    - Closes the pool on exit

    Raises:
        NotConfigured: postgres backend selected without a database_url
    """
    settings = settings or get_settings()
    configure_logging(settings)
    policy = policy_from_settings(settings)
    notifier = notifier or ConsoleNotifier()

    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on exit")
        yield build_core(InMemoryGateway(), notifier, policy)
        return

    if not settings.database_url:
        raise NotConfigured("DATABASE_URL is required for the postgres storage backend")

    logger.info("Connecting to database...")
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=True,
    )
    try:
        logger.info("Running database migrations...")
        run_migrations(pool)
        yield build_core(PostgresGateway(pool), notifier, policy)
    finally:
        pool.close()
        logger.info("Database connection pool closed")
