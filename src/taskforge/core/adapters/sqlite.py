"""SQLite database adapter.

Uses aiosqlite, which runs one ``sqlite3`` connection on a worker thread.
A SQLite file allows one writer at a time, so the adapter owns exactly one
connection and lends it out under an ``asyncio.Lock``: each ``query`` call or
connection handle holds the lock for its whole duration, which keeps a
RETURNING emulation sequence and a caller's transaction free of interleaved
statements from other tasks.

The connection runs with ``isolation_level=None``; transactions are only
ever opened explicitly (``BEGIN``/``BEGIN IMMEDIATE``/``SAVEPOINT``).
"""

from __future__ import annotations

import asyncio
import itertools
import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import aiosqlite

from taskforge.core.enums import StatementKind
from taskforge.core.errors import (
    BackendUnavailableError,
    ConstraintViolationError,
    DatabaseError,
    MalformedQueryError,
    QueryError,
)
from taskforge.core.logging import get_logger
from taskforge.core.protocols import BackendSession, ExecResult
from taskforge.core.settings import DatabaseSettings

from .base import DatabaseAdapter
from .types import AdapterStats, DatabaseType

logger = get_logger(__name__)

_savepoint_ids = itertools.count(1)


def map_sqlite_error(error: BaseException, sql: str | None = None) -> DatabaseError:
    """Translate a ``sqlite3`` exception into the taskforge error taxonomy."""
    code = getattr(error, "sqlite_errorname", None)
    message = str(error)

    if isinstance(error, sqlite3.IntegrityError):
        mapped: DatabaseError = ConstraintViolationError(message, code=code, cause=error)
    elif isinstance(error, sqlite3.OperationalError) and (
        "locked" in message or "busy" in message or "unable to open" in message
    ):
        mapped = BackendUnavailableError(message, code=code, cause=error)
    elif isinstance(error, sqlite3.OperationalError) and (
        "syntax error" in message
        or "incomplete input" in message
        or "no such" in message
        or "has no column" in message
    ):
        mapped = MalformedQueryError(message, code=code, cause=error)
    elif isinstance(error, (sqlite3.ProgrammingError, sqlite3.InterfaceError)):
        mapped = MalformedQueryError(message, code=code, cause=error)
    elif isinstance(error, ValueError):
        mapped = MalformedQueryError(message, cause=error)
    else:
        mapped = QueryError(message, code=code, cause=error)

    if sql is not None:
        mapped.with_context(sql=sql)
    return mapped.with_context(backend=DatabaseType.SQLITE.value)


def _bindable(value: Any) -> Any:
    # sqlite3 has no native binding for these
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class SQLiteSession(BackendSession):
    """The adapter's single connection, lent to one holder at a time."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def _rows(self, sql: str, params: Sequence[Any]) -> tuple[list[dict[str, Any]], int, int | None]:
        try:
            cursor = await self._conn.execute(sql, [_bindable(p) for p in params])
            try:
                records = await cursor.fetchall() if cursor.description else []
                return [dict(r) for r in records], cursor.rowcount, cursor.lastrowid
            finally:
                await cursor.close()
        except (sqlite3.Error, ValueError) as e:
            raise map_sqlite_error(e, sql) from e

    async def run(
        self, sql: str, params: Sequence[Any] = (), kind: StatementKind = StatementKind.OTHER
    ) -> tuple[list[dict[str, Any]], int]:
        rows, rowcount, _ = await self._rows(sql, params)
        if kind.is_write:
            return rows, max(rowcount, 0)
        return rows, len(rows)

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        rows, _, _ = await self._rows(sql, params)
        return rows

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecResult:
        _, rowcount, lastrowid = await self._rows(sql, params)
        return ExecResult(row_count=max(rowcount, 0), last_row_id=lastrowid)

    async def _command(self, sql: str) -> None:
        try:
            await self._conn.execute(sql)
        except sqlite3.Error as e:
            raise map_sqlite_error(e, sql) from e

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._conn.in_transaction:
            name = f"taskforge_sp_{next(_savepoint_ids)}"
            await self._command(f"SAVEPOINT {name}")
            try:
                yield
            except BaseException:
                # an OR ROLLBACK conflict has already ended the whole transaction
                if self._conn.in_transaction:
                    await self._command(f"ROLLBACK TO SAVEPOINT {name}")
                    await self._command(f"RELEASE SAVEPOINT {name}")
                raise
            await self._command(f"RELEASE SAVEPOINT {name}")
            return

        # IMMEDIATE takes the write lock up front so the sequence cannot deadlock midway
        await self._command("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            if self._conn.in_transaction:
                await self._command("ROLLBACK")
            raise
        await self._command("COMMIT")


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter.

    Suitable for:
    - Development and testing
    - Single-process deployments
    """

    db_type = DatabaseType.SQLITE

    def __init__(self, settings: DatabaseSettings):
        super().__init__(settings)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._settings.sqlite_path or ":memory:"

    async def connect(self) -> None:
        """Open the connection and enable foreign keys."""
        if self._conn is not None:
            return
        path = self.path
        try:
            if path != ":memory:" and not path.startswith("file:"):
                Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(
                path,
                timeout=self._settings.command_timeout,
                isolation_level=None,
                uri=path.startswith("file:"),
            )
        except (sqlite3.Error, OSError) as e:
            raise BackendUnavailableError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ).with_context(backend=self.db_type.value) from e

        conn.row_factory = sqlite3.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        self._conn = conn
        self._connected = True
        logger.info("sqlite_connected", path=path)

    async def disconnect(self) -> None:
        """Close the connection once the current holder (if any) releases it."""
        if self._conn is None:
            return
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._settings.acquire_timeout)
        except asyncio.TimeoutError:
            logger.warning("sqlite_disconnect_forced", path=self.path)
            await self._close()
            return
        try:
            await self._close()
        finally:
            self._lock.release()

    async def _close(self) -> None:
        conn, self._conn = self._conn, None
        self._connected = False
        if conn is not None:
            await conn.close()
            logger.info("sqlite_disconnected", path=self.path)

    async def acquire_session(self) -> SQLiteSession:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._settings.acquire_timeout)
        except asyncio.TimeoutError as e:
            raise BackendUnavailableError(
                f"Timed out after {self._settings.acquire_timeout}s waiting for the SQLite connection",
                cause=e,
            ).with_context(backend=self.db_type.value) from e
        if self._conn is None:
            self._lock.release()
            raise BackendUnavailableError("SQLite connection is closed").with_context(
                backend=self.db_type.value
            )
        return SQLiteSession(self._conn)

    async def release_session(self, session: BackendSession) -> None:
        try:
            if self._conn is not None and self._conn.in_transaction:
                logger.warning("sqlite_transaction_abandoned", path=self.path)
                await self._conn.execute("ROLLBACK")
        finally:
            self._lock.release()

    def stats(self) -> AdapterStats:
        return AdapterStats(
            backend=self.db_type,
            connected=self._connected,
            size=1 if self._conn is not None else 0,
            free_size=0 if self._lock.locked() or self._conn is None else 1,
            min_size=1,
            max_size=1,
            extra={"path": self.path},
        )


__all__ = [
    "SQLiteAdapter",
    "SQLiteSession",
    "map_sqlite_error",
]
