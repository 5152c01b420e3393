"""
Shared enums for the taskforge data-access layer.

Enums in this module are used by several modules (settings, adapters,
classifier, pool facade) and are kept here to avoid import cycles.

STDLIB ONLY - NO PYDANTIC.
"""

from enum import Enum


class DatabaseType(str, Enum):
    """Supported storage engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class StatementKind(str, Enum):
    """
    Statement kind as decided by the leading keyword.

    Only SELECT/INSERT/UPDATE/DELETE are understood by the RETURNING
    emulator; everything else (DDL, ``BEGIN``/``COMMIT``, ``WITH``, ``PRAGMA``)
    is OTHER and executed as-is.
    """

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    OTHER = "OTHER"

    @property
    def is_write(self) -> bool:
        return self in (StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE)


class PoolState(str, Enum):
    """Lifecycle of the pool facade. ``SHUTDOWN`` is terminal."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SHUTDOWN = "shutdown"
