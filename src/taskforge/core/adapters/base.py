"""Database adapter base class.

Manifesto:
    All adapters share the same lifecycle (connect/disconnect), the same way
    of lending a pinned session, and a ping.  The abstract base class defines
    that contract so the pool facade never depends on a specific driver.

Features:
    - Abstract ``connect()``, ``disconnect()``, ``acquire_session()``, ``release_session()``
    - ``session()`` async context manager that always releases
    - ``ping()`` that never raises
    - Dialect resolved from the adapter's ``db_type``

Tags:
    database, abstract-base, adapter-pattern, taskforge

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import ClassVar

from taskforge.core.dialect import Dialect, get_dialect
from taskforge.core.errors import TaskforgeError
from taskforge.core.logging import get_logger
from taskforge.core.protocols import BackendSession
from taskforge.core.settings import DatabaseSettings

from .types import AdapterStats, DatabaseType

logger = get_logger(__name__)


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    Provides common functionality and defines the interface
    that all adapters must implement.
    """

    db_type: ClassVar[DatabaseType]

    def __init__(self, settings: DatabaseSettings):
        self._settings = settings
        self._connected = False
        self._dialect: Dialect = get_dialect(self.db_type)

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's database type."""
        return self._dialect

    @property
    def settings(self) -> DatabaseSettings:
        return self._settings

    @property
    def is_connected(self) -> bool:
        """Whether adapter is connected."""
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection(s) to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close all connections. Safe to call when not connected."""
        ...

    @abstractmethod
    async def acquire_session(self) -> BackendSession:
        """Borrow one pinned session; bounded by ``acquire_timeout``."""
        ...

    @abstractmethod
    async def release_session(self, session: BackendSession) -> None:
        """Give a session back. Any transaction left open is rolled back."""
        ...

    @abstractmethod
    def stats(self) -> AdapterStats:
        """Connection resource statistics."""
        ...

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BackendSession]:
        """Borrow a session for the duration of the block."""
        session = await self.acquire_session()
        try:
            yield session
        finally:
            await self.release_session(session)

    async def ping(self) -> bool:
        """
        Test connectivity. Returns True if the database answers ``SELECT 1``.

        Must not raise -- returns False on any mapped failure.
        """
        try:
            async with self.session() as session:
                rows = await session.fetch("SELECT 1 AS ok")
            return bool(rows) and rows[0]["ok"] == 1
        except TaskforgeError as e:
            logger.warning("ping_failed", backend=self.db_type.value, error=e.message)
            return False

    async def __aenter__(self) -> DatabaseAdapter:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} connected={self._connected}>"


__all__ = [
    "DatabaseAdapter",
]
