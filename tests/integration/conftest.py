"""
Shared fixtures for PostgreSQL-backed tests.

Requires PostgreSQL at DATABASE_URL (docker-compose). Tests are skipped,
not failed, when the database cannot be reached.
"""

from collections.abc import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresGateway, run_migrations
from src.config.settings import get_settings


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool and apply migrations once per session."""
    settings = get_settings()
    try:
        with psycopg.connect(settings.database_url, connect_timeout=2):
            pass
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")

    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every table before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE sessions, one_time_credentials, events, accounts")
        conn.commit()
    yield


@pytest.fixture
def pg_gateway(pool: ConnectionPool, clean_database: None) -> PostgresGateway:
    return PostgresGateway(pool)


def insert_event(
    pool: ConnectionPool,
    title: str,
    admin_token: str,
    created_by_account_id: str | None = None,
) -> str:
    """Events are written by another subsystem; seed one directly."""
    with pool.connection() as conn:
        row = conn.execute(
            "INSERT INTO events (title, admin_token, created_by_account_id) "
            "VALUES (%s, %s, %s) RETURNING id",
            (title, admin_token, created_by_account_id),
        ).fetchone()
        conn.commit()
    return str(row[0])
