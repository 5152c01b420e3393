"""Database adapters -- one interface over SQLite and PostgreSQL.

Manifesto:
    The application runs on SQLite in development and on PostgreSQL in
    production.  Each adapter owns its driver, its connection resources and
    the mapping of driver exceptions onto ``taskforge.core.errors``; nothing
    above this package imports a driver.

    ``asyncpg`` is **import-guarded**: it is only required when a PostgreSQL
    adapter connects.  Install the extra::

        pip install taskforge[postgresql]

Architecture::

    DatabaseAdapter (base.py)        Abstract base: connect/disconnect/session/ping
        |-- SQLiteAdapter            aiosqlite, one connection behind a lock
        |-- PostgreSQLAdapter        asyncpg pool (optional)

    AdapterRegistry (registry.py)    DatabaseType -> adapter class
    AdapterStats (types.py)          Connection resource snapshot

Guardrails:
    ❌ ``session.fetch("SELECT * FROM t WHERE id=" + user_input)``
    ✅ ``session.fetch("SELECT * FROM t WHERE id=?", [user_input])``
"""

from .base import DatabaseAdapter
from .postgresql import PostgreSQLAdapter, PostgresSession, map_postgres_error
from .registry import AdapterRegistry, adapter_registry, get_adapter
from .sqlite import SQLiteAdapter, SQLiteSession, map_sqlite_error
from .types import AdapterStats, DatabaseType

__all__ = [
    "DatabaseAdapter",
    "DatabaseType",
    "AdapterStats",
    "SQLiteAdapter",
    "SQLiteSession",
    "PostgreSQLAdapter",
    "PostgresSession",
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
    "map_sqlite_error",
    "map_postgres_error",
]
