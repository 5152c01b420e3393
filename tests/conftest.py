"""
Shared pytest fixtures and configuration for taskforge tests.

This module provides:
- Auto-marking of tests as ``unit`` / ``integration``
- SQLite settings pointing at a per-test temporary file
- A provisioned, READY ``DatabasePool`` on SQLite
- A small task-manager schema (users, tasks, parc_informatique)

Usage:
    Fixtures are auto-discovered by pytest:

    @pytest.mark.asyncio
    async def test_something(sqlite_pool):
        result = await sqlite_pool.query("SELECT * FROM users")
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from taskforge.core.pool import ConnectionHandle, DatabasePool
from taskforge.core.settings import DatabaseSettings

# =============================================================================
# Test Markers Configuration
# =============================================================================

# Modules that open a real database file
_INTEGRATION_MODULES = {
    "test_adapter_sqlite.py",
    "test_returning.py",
    "test_pool.py",
}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        path = Path(str(item.fspath))

        if "integration" in path.parts or path.name in _INTEGRATION_MODULES:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Schema
# =============================================================================

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      name TEXT NOT NULL,
      email TEXT UNIQUE NOT NULL,
      role TEXT DEFAULT 'user' CHECK (role IN ('admin', 'user')),
      is_active BOOLEAN DEFAULT 1,
      created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      title TEXT NOT NULL,
      assignee_id INTEGER REFERENCES users(id),
      priority TEXT DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high')),
      status TEXT DEFAULT 'not_started' CHECK (status IN ('not_started', 'in_progress', 'completed')),
      created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parc_informatique (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      type TEXT NOT NULL,
      marque TEXT NOT NULL,
      specifications TEXT,
      proprietaire TEXT NOT NULL
    )
    """,
]


async def create_schema(conn: ConnectionHandle) -> None:
    """Provisioner: create the test schema on the pinned connection."""
    for ddl in SCHEMA:
        await conn.query(ddl)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> DatabaseSettings:
    """Settings for a fresh SQLite file in a temporary directory."""
    return DatabaseSettings(
        backend="sqlite",
        sqlite_path=str(tmp_path / "taskmanager.db"),
        acquire_timeout=2.0,
    )


@pytest_asyncio.fixture
async def sqlite_pool(sqlite_settings: DatabaseSettings) -> AsyncIterator[DatabasePool]:
    """A READY pool on SQLite with the test schema provisioned."""
    pool = DatabasePool(sqlite_settings)
    await pool.initialize(provision=create_schema)
    try:
        yield pool
    finally:
        await pool.shutdown()


@pytest.fixture
def provision_schema():
    """The schema provisioner, for tests that drive ``initialize()`` themselves."""
    return create_schema
