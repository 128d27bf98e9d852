"""
PostgreSQL repository adapter - Implements PersistenceGateway protocol.

This module provides the PostgreSQL implementation of the domain's
persistence port using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Uniqueness**: UNIQUE constraints on accounts.username and accounts.email.
   create_account uses INSERT ... ON CONFLICT DO NOTHING, so two concurrent
   registrations for the same name cannot both succeed and the loser gets
   None instead of an exception.

2. **Single redemption**: consume_credential is one UPDATE whose target row
   is chosen by a sub-select with FOR UPDATE, and whose outer WHERE re-checks
   used = FALSE. The check and the write are one statement; a concurrent
   redemption of the same secret waits for the row lock and then finds
   nothing to update.

3. **Time**: every expiry is stamped and compared with database NOW(), so
   application server clock skew cannot extend a credential's life.

Driver errors other than the expected unique violations are logged and
re-raised as PersistenceFailure.
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import Any

import psycopg
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.exceptions import PersistenceFailure
from src.domain.models import Account, EventRecord, OneTimeCredential, SessionIdentity
from src.domain.ports import CredentialKind

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    id, username, email, password_hash, email_verified, subscription_tier,
    subscription_status, events_created_count, totp_secret, totp_enabled,
    is_active, created_at, last_login
"""

_CREDENTIAL_COLUMNS = """
    kind, secret, expires_at, account_id, event_id, email, requires_totp, used
"""


def _as_uuid(value: str | None) -> uuid.UUID | None:
    """Parse an id; malformed ids simply match nothing."""
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _account_from_row(row: dict[str, Any]) -> Account:
    return Account(
        id=str(row["id"]),
        username=row["username"],
        email=row["email"],
        password_hash=row["password_hash"],
        email_verified=row["email_verified"],
        subscription_tier=row["subscription_tier"],
        subscription_status=row["subscription_status"],
        events_created_count=row["events_created_count"],
        totp_secret=row["totp_secret"],
        totp_enabled=row["totp_enabled"],
        is_active=row["is_active"],
        created_at=row["created_at"],
        last_login=row["last_login"],
    )


def _credential_from_row(row: dict[str, Any]) -> OneTimeCredential:
    return OneTimeCredential(
        kind=CredentialKind(row["kind"]),
        secret=row["secret"],
        expires_at=row["expires_at"],
        account_id=str(row["account_id"]) if row["account_id"] is not None else None,
        event_id=row["event_id"],
        email=row["email"],
        requires_totp=row["requires_totp"],
        used=row["used"],
    )


def _event_from_row(row: dict[str, Any]) -> EventRecord:
    owner = row["created_by_account_id"]
    return EventRecord(
        id=str(row["id"]),
        title=row["title"],
        admin_token=row["admin_token"],
        created_by_account_id=str(owner) if owner is not None else None,
    )


class PostgresGateway:
    """
    Implements PersistenceGateway protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize gateway with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        """Pooled cursor; commits on success, rolls back on error."""
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                yield cursor
        except UniqueViolation:
            raise
        except psycopg.Error as e:
            logger.error("Database operation failed: %s", e)
            raise PersistenceFailure("Database operation failed") from e

    def _fetch_account(self, where: str, params: tuple) -> Account | None:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {where} LIMIT 1", params)
            row = cursor.fetchone()
        return _account_from_row(row) if row is not None else None

    def _execute(self, sql: str, params: tuple) -> int:
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    # Accounts

    def create_account(
        self,
        username: str,
        email: str,
        password_hash: str,
        email_verified: bool = False,
    ) -> str | None:
        """
        Insert an account unless the username or email is taken.

        ON CONFLICT DO NOTHING without a target covers both UNIQUE
        constraints; a conflicting insert returns no row.
        """
        sql = """
            INSERT INTO accounts (username, email, password_hash, email_verified)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING id
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (username, email, password_hash, email_verified))
            row = cursor.fetchone()
        return str(row["id"]) if row is not None else None

    def username_taken(self, username: str, exclude_account_id: str | None = None) -> bool:
        return self._taken("username", username, exclude_account_id)

    def email_taken(self, email: str, exclude_account_id: str | None = None) -> bool:
        return self._taken("email", email, exclude_account_id)

    def _taken(self, column: str, value: str, exclude_account_id: str | None) -> bool:
        # Active and inactive rows both count
        sql = f"SELECT 1 FROM accounts WHERE {column} = %s"
        params: tuple = (value,)
        excluded = _as_uuid(exclude_account_id)
        if excluded is not None:
            sql += " AND id <> %s"
            params += (excluded,)
        with self._cursor() as cursor:
            cursor.execute(sql + " LIMIT 1", params)
            return cursor.fetchone() is not None

    def get_account(self, account_id: str) -> Account | None:
        parsed = _as_uuid(account_id)
        if parsed is None:
            return None
        return self._fetch_account("id = %s", (parsed,))

    def find_active_by_login(self, username_or_email: str) -> Account | None:
        return self._fetch_account(
            "(username = %s OR email = %s) AND is_active", (username_or_email, username_or_email)
        )

    def find_active_by_email(self, email: str) -> Account | None:
        return self._fetch_account("email = %s AND is_active", (email,))

    def mark_email_verified(self, account_id: str) -> None:
        self._update_account(account_id, "email_verified = TRUE", ())

    def touch_last_login(self, account_id: str) -> None:
        self._update_account(account_id, "last_login = NOW()", ())

    def update_password_hash(self, account_id: str, password_hash: str) -> None:
        self._update_account(account_id, "password_hash = %s", (password_hash,))

    def update_profile(
        self,
        account_id: str,
        username: str | None = None,
        email: str | None = None,
    ) -> bool:
        assignments = []
        params: tuple = ()
        if username is not None:
            assignments.append("username = %s")
            params += (username,)
        if email is not None:
            # A changed address has to be verified again
            assignments.append("email_verified = email_verified AND email = %s")
            assignments.append("email = %s")
            params += (email, email)
        if not assignments:
            return True
        try:
            return self._update_account(account_id, ", ".join(assignments), params)
        except UniqueViolation:
            return False

    def store_totp_secret(self, account_id: str, secret: str) -> bool:
        return self._update_account(
            account_id, "totp_secret = %s, totp_enabled = FALSE", (secret,)
        )

    def enable_totp(self, account_id: str) -> bool:
        parsed = _as_uuid(account_id)
        if parsed is None:
            return False
        sql = """
            UPDATE accounts SET totp_enabled = TRUE
            WHERE id = %s AND totp_secret IS NOT NULL
        """
        return self._execute(sql, (parsed,)) == 1

    def clear_totp(self, account_id: str) -> None:
        self._update_account(account_id, "totp_enabled = FALSE, totp_secret = NULL", ())

    def _update_account(self, account_id: str, assignments: str, params: tuple) -> bool:
        parsed = _as_uuid(account_id)
        if parsed is None:
            return False
        sql = f"UPDATE accounts SET {assignments} WHERE id = %s"
        return self._execute(sql, params + (parsed,)) == 1

    # Sessions

    def create_session(
        self,
        account_id: str,
        token: str,
        ttl: timedelta,
        client_metadata: dict[str, str] | None = None,
    ) -> None:
        metadata = client_metadata or {}
        sql = """
            INSERT INTO sessions (account_id, session_token, ip_address, user_agent, expires_at)
            VALUES (%s, %s, %s, %s, NOW() + %s)
        """
        self._execute(
            sql,
            (
                _as_uuid(account_id),
                token,
                metadata.get("ip_address"),
                metadata.get("user_agent"),
                ttl,
            ),
        )

    def find_session_identity(self, token: str) -> SessionIdentity | None:
        sql = """
            SELECT a.id, a.username, a.email, a.subscription_tier
            FROM sessions s
            JOIN accounts a ON a.id = s.account_id
            WHERE s.session_token = %s
              AND s.expires_at > NOW()
              AND a.is_active
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (token,))
            row = cursor.fetchone()
        if row is None:
            return None
        return SessionIdentity(
            account_id=str(row["id"]),
            username=row["username"],
            email=row["email"],
            subscription_tier=row["subscription_tier"],
        )

    def delete_session(self, token: str) -> None:
        self._execute("DELETE FROM sessions WHERE session_token = %s", (token,))

    # One-time credentials

    def issue_credential(
        self,
        kind: CredentialKind,
        secret: str,
        ttl: timedelta,
        *,
        account_id: str | None = None,
        event_id: str | None = None,
        email: str | None = None,
        requires_totp: bool = False,
    ) -> OneTimeCredential:
        sql = f"""
            INSERT INTO one_time_credentials
                (kind, secret, account_id, event_id, email, requires_totp, expires_at)
            VALUES (%s, %s, %s, %s, %s, %s, NOW() + %s)
            RETURNING {_CREDENTIAL_COLUMNS}
        """
        with self._cursor() as cursor:
            cursor.execute(
                sql,
                (
                    kind.value,
                    secret,
                    _as_uuid(account_id),
                    event_id,
                    email,
                    requires_totp,
                    ttl,
                ),
            )
            row = cursor.fetchone()
        return _credential_from_row(row)

    def consume_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        account_id: str | None = None,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        """
        Redeem a credential in one statement.

        The sub-select locks the newest matching row; the outer WHERE
        re-checks used = FALSE after the lock is granted.
        """
        filters, params = self._credential_filters(kind, secret, account_id, event_id)
        if filters is None:
            return None
        sql = f"""
            UPDATE one_time_credentials
            SET used = TRUE, used_at = NOW()
            WHERE id = (
                SELECT id FROM one_time_credentials
                WHERE {filters}
                ORDER BY created_at DESC
                LIMIT 1
                FOR UPDATE
            )
              AND used = FALSE
            RETURNING {_CREDENTIAL_COLUMNS}
        """
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        if row is None:
            return None
        # Report the row as it was before redemption
        credential = _credential_from_row(row)
        return replace(credential, used=False)

    def find_valid_credential(
        self,
        kind: CredentialKind,
        secret: str,
        *,
        event_id: str | None = None,
    ) -> OneTimeCredential | None:
        filters, params = self._credential_filters(kind, secret, None, event_id)
        sql = f"""
            SELECT {_CREDENTIAL_COLUMNS} FROM one_time_credentials
            WHERE {filters}
            ORDER BY created_at DESC
            LIMIT 1
        """
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _credential_from_row(row) if row is not None else None

    def _credential_filters(
        self,
        kind: CredentialKind,
        secret: str,
        account_id: str | None,
        event_id: str | None,
    ) -> tuple[str | None, tuple]:
        clauses = ["kind = %s", "secret = %s", "used = FALSE", "expires_at > NOW()"]
        params: tuple = (kind.value, secret)
        if account_id is not None:
            parsed = _as_uuid(account_id)
            if parsed is None:
                return None, ()
            clauses.append("account_id = %s")
            params += (parsed,)
        if event_id is not None:
            clauses.append("event_id = %s")
            params += (event_id,)
        return " AND ".join(clauses), params

    def revoke_account_credentials(self, account_id: str) -> None:
        parsed = _as_uuid(account_id)
        if parsed is None:
            return
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM sessions WHERE account_id = %s", (parsed,))
            cursor.execute("DELETE FROM one_time_credentials WHERE account_id = %s", (parsed,))

    # Events

    def get_event(self, event_id: str) -> EventRecord | None:
        parsed = _as_uuid(event_id)
        if parsed is None:
            return None
        return self._fetch_event("id = %s", (parsed,))

    def find_event_by_admin_token(self, admin_token: str) -> EventRecord | None:
        return self._fetch_event("admin_token = %s", (admin_token,))

    def _fetch_event(self, where: str, params: tuple) -> EventRecord | None:
        sql = f"SELECT id, title, admin_token, created_by_account_id FROM events WHERE {where}"
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _event_from_row(row) if row is not None else None


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
