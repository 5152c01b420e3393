"""
Unified pool facade.

Manifesto:
    Route handlers and services depend on ONE object with one surface,
    whichever store is configured: ``query()`` for single statements and
    ``acquire()`` for a pinned connection that can run an explicit
    transaction.  The facade hides the backend, enforces its lifecycle and
    hands back rows in the same shape on SQLite and PostgreSQL.

Architecture:
    ::

        DatabasePool(settings)
            │ initialize(provision=...)
            ▼
        ┌────────────┐     ┌───────────────┐     ┌──────────────────────┐
        │ READY      │────▶│ QueryExecutor │────▶│ DatabaseAdapter      │
        │            │     │ translate     │     │  SQLite  (aiosqlite) │
        │ query()    │     │ classify      │     │  Postgres (asyncpg)  │
        │ acquire()  │     │ emulate/run   │     └──────────────────────┘
        └────────────┘     │ decode        │
            │ shutdown()   └───────────────┘
            ▼
        SHUTDOWN (terminal)

    Lifecycle:
        UNINITIALIZED ──initialize()──▶ READY ──shutdown()──▶ SHUTDOWN
        query()/acquire() outside READY raise NotInitializedError.

Examples:
    >>> pool = DatabasePool(DatabaseSettings.from_url("sqlite:///taskmanager.db"))
    >>> await pool.initialize()
    >>> result = await pool.query(
    ...     "INSERT INTO tasks (title) VALUES ($1) RETURNING *", ["Install printer"]
    ... )
    >>> result.rows[0]["id"]
    1
    >>> async with pool.acquire() as conn:
    ...     async with conn.transaction():
    ...         await conn.query("UPDATE inventaire SET quantite = quantite - 1 WHERE id = $1", [7])
    ...         await conn.query("INSERT INTO activity_logs (action) VALUES ($1)", ["stock_out"])
    >>> await pool.shutdown()

Guardrails:
    ❌ DON'T: Construct a pool per request
    ✅ DO: Build it once at startup and inject it

    ❌ DON'T: Forget ``release()`` on a handle obtained with ``await pool.acquire()``
    ✅ DO: Prefer ``async with pool.acquire() as conn``

Tags:
    pool, facade, lifecycle, async, taskforge

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Generator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from .adapters.base import DatabaseAdapter
from .adapters.registry import get_adapter
from .enums import DatabaseType, PoolState
from .errors import BackendUnavailableError, NotInitializedError
from .executor import QueryExecutor
from .logging import configure_logging, get_logger
from .protocols import BackendSession
from .result import QueryResult
from .settings import DatabaseSettings

logger = get_logger(__name__)

Provisioner = Callable[["ConnectionHandle"], Awaitable[None]]


class ConnectionHandle:
    """
    A pinned connection borrowed from the pool.

    Every ``query`` on the handle runs on the same backend connection, so an
    explicit ``BEGIN``/``COMMIT``/``ROLLBACK`` sequence (or ``transaction()``)
    behaves as one transaction.  ``release()`` is idempotent; a transaction
    still open at release is rolled back.
    """

    def __init__(self, adapter: DatabaseAdapter, session: BackendSession, executor: QueryExecutor):
        self._adapter = adapter
        self._session = session
        self._executor = executor
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def backend(self) -> DatabaseType:
        return self._adapter.db_type

    async def query(self, text: str, params: Sequence[Any] | None = None) -> QueryResult:
        if self._released:
            raise NotInitializedError("Connection handle has already been released")
        return await self._executor.run(self._session, text, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ConnectionHandle]:
        """Commit on normal exit, roll back on exception.

        Nested use becomes a savepoint.
        """
        if self._released:
            raise NotInitializedError("Connection handle has already been released")
        async with self._session.atomic():
            yield self

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._adapter.release_session(self._session)

    async def __aenter__(self) -> ConnectionHandle:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"<ConnectionHandle backend={self.backend.value} released={self._released}>"


class _AcquireContext:
    """Result of ``pool.acquire()``: awaitable, or usable with ``async with``."""

    def __init__(self, pool: DatabasePool):
        self._pool = pool
        self._handle: ConnectionHandle | None = None

    def __await__(self) -> Generator[Any, None, ConnectionHandle]:
        return self._pool._acquire_handle().__await__()

    async def __aenter__(self) -> ConnectionHandle:
        self._handle = await self._pool._acquire_handle()
        return self._handle

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._handle is not None:
            await self._handle.release()


class DatabasePool:
    """Backend-agnostic query surface with an explicit lifecycle."""

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        *,
        adapter: DatabaseAdapter | None = None,
    ):
        self._settings = (settings or DatabaseSettings()).resolved()
        self._adapter = adapter
        self._executor: QueryExecutor | None = None
        self._state = PoolState.UNINITIALIZED
        self._lifecycle_lock = asyncio.Lock()

    # -- introspection ---------------------------------------------------------

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def settings(self) -> DatabaseSettings:
        return self._settings

    @property
    def backend(self) -> DatabaseType:
        """The configured backend; stable for the lifetime of the pool."""
        if self._adapter is not None:
            return self._adapter.db_type
        return self._settings.backend

    @property
    def is_ready(self) -> bool:
        return self._state is PoolState.READY

    # -- lifecycle -------------------------------------------------------------

    async def initialize(self, provision: Provisioner | None = None) -> DatabasePool:
        """
        Connect to the configured backend and make the pool READY.

        ``provision`` (optional) runs once on a pinned connection before the
        pool is published -- schema creation, seed data.  If it fails the
        backend is disconnected and the pool stays UNINITIALIZED.

        Calling ``initialize`` on a READY pool is a no-op.
        """
        async with self._lifecycle_lock:
            if self._state is PoolState.READY:
                logger.warning("pool_already_initialized", backend=self.backend.value)
                return self
            if self._state is PoolState.SHUTDOWN:
                raise NotInitializedError("Database pool has been shut down and cannot be reused")

            adapter = self._adapter or get_adapter(self._settings.backend, self._settings)
            executor = QueryExecutor.for_dialect(adapter.dialect, self._settings)

            await adapter.connect()
            try:
                if not await adapter.ping():
                    raise BackendUnavailableError(
                        f"{adapter.db_type.value} backend did not answer the connectivity check"
                    ).with_context(backend=adapter.db_type.value)
                if provision is not None:
                    handle = ConnectionHandle(adapter, await adapter.acquire_session(), executor)
                    try:
                        await provision(handle)
                    finally:
                        await handle.release()
            except BaseException:
                await adapter.disconnect()
                raise

            self._adapter = adapter
            self._executor = executor
            self._state = PoolState.READY
            logger.info("pool_initialized", backend=adapter.db_type.value)
        return self

    async def shutdown(self) -> None:
        """Release every backend resource. Idempotent; the pool cannot be reused."""
        async with self._lifecycle_lock:
            if self._state is PoolState.SHUTDOWN:
                return
            previous, self._state = self._state, PoolState.SHUTDOWN
            self._executor = None
            if previous is PoolState.READY and self._adapter is not None:
                await self._adapter.disconnect()
            logger.info("pool_shutdown", backend=self.backend.value)

    async def __aenter__(self) -> DatabasePool:
        return await self.initialize()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    # -- queries ---------------------------------------------------------------

    def _require_ready(self) -> tuple[DatabaseAdapter, QueryExecutor]:
        if self._state is not PoolState.READY or self._adapter is None or self._executor is None:
            if self._state is PoolState.SHUTDOWN:
                raise NotInitializedError("Database pool has been shut down")
            raise NotInitializedError()
        return self._adapter, self._executor

    async def query(self, text: str, params: Sequence[Any] | None = None) -> QueryResult:
        """Run one statement on a borrowed connection and return its result."""
        adapter, executor = self._require_ready()
        async with adapter.session() as session:
            return await executor.run(session, text, params)

    def acquire(self) -> _AcquireContext:
        """
        Borrow a pinned connection.

        Usage:
            async with pool.acquire() as conn: ...
            conn = await pool.acquire(); ...; await conn.release()
        """
        return _AcquireContext(self)

    async def _acquire_handle(self) -> ConnectionHandle:
        adapter, executor = self._require_ready()
        session = await adapter.acquire_session()
        return ConnectionHandle(adapter, session, executor)

    # -- health ----------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        """Lifecycle state, connectivity and connection resource statistics."""
        info: dict[str, Any] = {"state": self._state.value, "backend": self.backend.value}
        if self._state is not PoolState.READY or self._adapter is None:
            info["healthy"] = False
            return info
        info["healthy"] = await self._adapter.ping()
        info.update(self._adapter.stats().to_dict())
        return info

    def __repr__(self) -> str:
        return f"<DatabasePool backend={self.backend.value} state={self._state.value}>"


async def init_database(
    settings: DatabaseSettings | None = None,
    provision: Provisioner | None = None,
    *,
    configure_logs: bool = True,
) -> DatabasePool:
    """Build and initialize a pool in one step.

    Startup entry point: unless ``configure_logs`` is False, logging is
    configured from ``settings.log_level`` / ``settings.json_logs`` first.
    """
    settings = settings or DatabaseSettings()
    if configure_logs:
        configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return await DatabasePool(settings).initialize(provision)


__all__ = [
    "ConnectionHandle",
    "DatabasePool",
    "Provisioner",
    "init_database",
]
