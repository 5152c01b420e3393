"""PostgreSQL database adapter.

Uses asyncpg. Positional ``$n`` markers and ``RETURNING`` are native, so
statements reach the server exactly as written. ``json``/``jsonb`` columns
are converted by a type codec installed on every pooled connection.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from taskforge.core.codec import StructuredFieldCodec
from taskforge.core.database import close_pool, create_pool
from taskforge.core.enums import StatementKind
from taskforge.core.errors import (
    BackendUnavailableError,
    ConfigError,
    ConstraintViolationError,
    DatabaseError,
    MalformedQueryError,
    QueryError,
    TaskforgeError,
)
from taskforge.core.logging import get_logger
from taskforge.core.protocols import BackendSession, ExecResult
from taskforge.core.settings import DatabaseSettings

from .base import DatabaseAdapter
from .types import AdapterStats, DatabaseType

logger = get_logger(__name__)

# SQLSTATE classes
_CONSTRAINT_CLASSES = ("23",)
_MALFORMED_CLASSES = ("22", "42")
_UNAVAILABLE_CLASSES = ("08", "53", "57")


def map_postgres_error(error: BaseException, sql: str | None = None) -> DatabaseError:
    """Translate an asyncpg (or transport) exception into the taskforge error taxonomy."""
    import asyncpg

    sqlstate = getattr(error, "sqlstate", None)
    message = str(error) or error.__class__.__name__

    if isinstance(error, asyncpg.PostgresError) and sqlstate:
        if sqlstate.startswith(_CONSTRAINT_CLASSES):
            mapped: DatabaseError = ConstraintViolationError(message, code=sqlstate, cause=error)
        elif sqlstate.startswith(_MALFORMED_CLASSES):
            mapped = MalformedQueryError(message, code=sqlstate, cause=error)
        elif sqlstate.startswith(_UNAVAILABLE_CLASSES):
            mapped = BackendUnavailableError(message, code=sqlstate, cause=error)
        else:
            mapped = QueryError(message, code=sqlstate, cause=error)
    elif isinstance(error, asyncpg.exceptions.ConnectionDoesNotExistError):
        mapped = BackendUnavailableError(message, cause=error)
    elif isinstance(error, (OSError, asyncio.TimeoutError)):
        mapped = BackendUnavailableError(message, cause=error)
    elif isinstance(error, asyncpg.InterfaceError):
        # client-side: wrong argument count, unencodable parameter
        mapped = MalformedQueryError(message, cause=error)
    else:
        mapped = QueryError(message, cause=error)

    if sql is not None:
        mapped.with_context(sql=sql)
    return mapped.with_context(backend=DatabaseType.POSTGRESQL.value)


def _status_count(status: str | None) -> int:
    """Affected-row count from a command tag such as ``INSERT 0 3`` or ``UPDATE 2``."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


class PostgresSession(BackendSession):
    """One pooled asyncpg connection."""

    def __init__(self, conn: Any):
        self._conn = conn

    @property
    def connection(self) -> Any:
        return self._conn

    async def run(
        self, sql: str, params: Sequence[Any] = (), kind: StatementKind = StatementKind.OTHER
    ) -> tuple[list[dict[str, Any]], int]:
        try:
            if kind is StatementKind.OTHER and not params:
                # simple-query protocol: DDL, BEGIN/COMMIT, multi-statement scripts
                status = await self._conn.execute(sql)
                return [], _status_count(status)
            stmt = await self._conn.prepare(sql)
            records = await stmt.fetch(*params)
            status = stmt.get_statusmsg()
        except TaskforgeError:
            raise
        except Exception as e:
            raise map_postgres_error(e, sql) from e

        rows = [dict(r) for r in records]
        if kind.is_write:
            return rows, _status_count(status)
        return rows, len(rows)

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        try:
            records = await self._conn.fetch(sql, *params)
        except Exception as e:
            raise map_postgres_error(e, sql) from e
        return [dict(r) for r in records]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecResult:
        try:
            status = await self._conn.execute(sql, *params)
        except Exception as e:
            raise map_postgres_error(e, sql) from e
        return ExecResult(row_count=_status_count(status))

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        # asyncpg nests as a savepoint when a transaction is already open
        tx = self._conn.transaction()
        try:
            await tx.start()
        except Exception as e:
            raise map_postgres_error(e) from e
        try:
            yield
        except BaseException:
            await tx.rollback()
            raise
        try:
            await tx.commit()
        except Exception as e:
            raise map_postgres_error(e) from e


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL database adapter.

    Uses an asyncpg connection pool sized by ``pool_min_size`` / ``pool_max_size``.
    Requires: pip install taskforge[postgresql]
    """

    db_type = DatabaseType.POSTGRESQL

    def __init__(self, settings: DatabaseSettings):
        super().__init__(settings)
        self._pool: Any = None
        self._json = StructuredFieldCodec(settings.structured_columns)

    async def _init_connection(self, conn: Any) -> None:
        for typename in ("json", "jsonb"):
            await conn.set_type_codec(
                typename,
                encoder=self._json.to_json_text,
                decoder=self._json.decode,
                schema="pg_catalog",
            )

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return
        s = self._settings
        try:
            self._pool = await create_pool(
                s.dsn(),
                min_size=s.pool_min_size,
                max_size=s.pool_max_size,
                command_timeout=s.command_timeout,
                ssl=s.ssl,
                timeout=s.connect_timeout,
                init=self._init_connection,
            )
        except (ConfigError, DatabaseError):
            raise
        except Exception as e:
            raise BackendUnavailableError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ).with_context(backend=self.db_type.value) from e
        self._connected = True

    async def disconnect(self) -> None:
        """Close the pool, waiting up to ``acquire_timeout`` for borrowed connections."""
        pool, self._pool = self._pool, None
        self._connected = False
        if pool is not None:
            await close_pool(pool, timeout=self._settings.acquire_timeout)

    async def acquire_session(self) -> PostgresSession:
        if self._pool is None:
            raise BackendUnavailableError("PostgreSQL pool is closed").with_context(
                backend=self.db_type.value
            )
        try:
            conn = await self._pool.acquire(timeout=self._settings.acquire_timeout)
        except asyncio.TimeoutError as e:
            raise BackendUnavailableError(
                f"Timed out after {self._settings.acquire_timeout}s waiting for a pooled connection",
                cause=e,
            ).with_context(backend=self.db_type.value) from e
        except Exception as e:
            raise map_postgres_error(e) from e
        return PostgresSession(conn)

    async def release_session(self, session: BackendSession) -> None:
        # pool.release() resets the connection, rolling back any open transaction
        if self._pool is not None and isinstance(session, PostgresSession):
            await self._pool.release(session.connection)

    def stats(self) -> AdapterStats:
        pool = self._pool
        if pool is None:
            return AdapterStats(backend=self.db_type, connected=False)
        return AdapterStats(
            backend=self.db_type,
            connected=self._connected,
            size=pool.get_size(),
            free_size=pool.get_idle_size(),
            min_size=pool.get_min_size(),
            max_size=pool.get_max_size(),
        )


__all__ = [
    "PostgreSQLAdapter",
    "PostgresSession",
    "map_postgres_error",
]
