"""Tests for ``taskforge.core.pool`` - the unified pool facade."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from taskforge.core.enums import DatabaseType, PoolState
from taskforge.core.errors import BackendUnavailableError, MalformedQueryError, NotInitializedError
from taskforge.core.pool import ConnectionHandle, DatabasePool, init_database
from taskforge.core.settings import DatabaseSettings


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_query_before_initialize_raises(self, sqlite_settings):
        pool = DatabasePool(sqlite_settings)
        assert pool.state is PoolState.UNINITIALIZED
        with pytest.raises(NotInitializedError):
            await pool.query("SELECT 1")
        with pytest.raises(NotInitializedError):
            await pool.acquire()

    @pytest.mark.asyncio
    async def test_initialize_then_shutdown(self, sqlite_settings):
        pool = DatabasePool(sqlite_settings)
        assert await pool.initialize() is pool
        assert pool.is_ready
        assert (await pool.query("SELECT 1 AS one")).scalar() == 1

        await pool.shutdown()
        assert pool.state is PoolState.SHUTDOWN
        with pytest.raises(NotInitializedError, match="shut down"):
            await pool.query("SELECT 1")

    @pytest.mark.asyncio
    async def test_double_initialize_is_noop(self, sqlite_pool):
        assert await sqlite_pool.initialize() is sqlite_pool
        assert sqlite_pool.is_ready

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, sqlite_settings):
        pool = DatabasePool(sqlite_settings)
        await pool.initialize()
        await pool.shutdown()
        await pool.shutdown()
        assert pool.state is PoolState.SHUTDOWN

    @pytest.mark.asyncio
    async def test_shutdown_before_initialize(self, sqlite_settings):
        pool = DatabasePool(sqlite_settings)
        await pool.shutdown()
        with pytest.raises(NotInitializedError):
            await pool.initialize()

    @pytest.mark.asyncio
    async def test_failed_provision_leaves_pool_uninitialized(self, sqlite_settings, provision_schema):
        async def broken(conn: ConnectionHandle) -> None:
            await conn.query("CREATE TABLEX broken (id INTEGER)")

        pool = DatabasePool(sqlite_settings)
        with pytest.raises(MalformedQueryError):
            await pool.initialize(provision=broken)
        assert pool.state is PoolState.UNINITIALIZED

        await pool.initialize(provision=provision_schema)
        assert pool.is_ready
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, tmp_path):
        missing_dir = tmp_path / "file-not-dir"
        missing_dir.write_text("")
        pool = DatabasePool(DatabaseSettings(sqlite_path=str(missing_dir / "tm.db")))
        with pytest.raises(BackendUnavailableError):
            await pool.initialize()
        assert pool.state is PoolState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_async_context_manager(self, sqlite_settings):
        async with DatabasePool(sqlite_settings) as pool:
            assert pool.is_ready
        assert pool.state is PoolState.SHUTDOWN

    @pytest.mark.asyncio
    async def test_init_database(self, sqlite_settings, provision_schema):
        pool = await init_database(sqlite_settings, provision=provision_schema, configure_logs=False)
        try:
            assert pool.backend is DatabaseType.SQLITE
            assert (await pool.query("SELECT COUNT(*) FROM users")).scalar() == 0
        finally:
            await pool.shutdown()

    @pytest.mark.asyncio
    async def test_init_database_configures_logging_from_settings(self, sqlite_settings):
        settings = sqlite_settings.model_copy(update={"log_level": "DEBUG", "json_logs": True})
        with patch("taskforge.core.pool.configure_logging") as configure:
            pool = await init_database(settings)
        try:
            configure.assert_called_once_with(level="DEBUG", json_format=True)
        finally:
            await pool.shutdown()

    @pytest.mark.asyncio
    async def test_init_database_can_leave_logging_alone(self, sqlite_settings):
        with patch("taskforge.core.pool.configure_logging") as configure:
            pool = await init_database(sqlite_settings, configure_logs=False)
        try:
            configure.assert_not_called()
        finally:
            await pool.shutdown()


class TestQuery:
    @pytest.mark.asyncio
    async def test_backend_is_reported(self, sqlite_pool):
        assert sqlite_pool.backend is DatabaseType.SQLITE

    @pytest.mark.asyncio
    async def test_select_with_markers(self, sqlite_pool):
        await sqlite_pool.query("INSERT INTO users (name, email) VALUES ($1, $2)", ["Ada", "ada@example.com"])
        result = await sqlite_pool.query(
            "SELECT name FROM users WHERE email = $2 AND name = $1", ["Ada", "ada@example.com"]
        )
        assert result.rows == [{"name": "Ada"}]
        assert result.row_count == 1

    @pytest.mark.asyncio
    async def test_write_without_returning_reports_row_count(self, sqlite_pool):
        for i in range(3):
            await sqlite_pool.query("INSERT INTO tasks (title) VALUES ($1)", [f"t{i}"])
        result = await sqlite_pool.query("UPDATE tasks SET priority = $1", ["high"])
        assert result.rows == []
        assert result.row_count == 3

    @pytest.mark.asyncio
    async def test_marker_in_literal_is_preserved(self, sqlite_pool):
        await sqlite_pool.query("INSERT INTO tasks (title) VALUES ('Budget: $1 per unit')")
        result = await sqlite_pool.query("SELECT title FROM tasks WHERE id = $1", [1])
        assert result.scalar() == "Budget: $1 per unit"

    @pytest.mark.asyncio
    async def test_marker_mismatch_rejected(self, sqlite_pool):
        with pytest.raises(MalformedQueryError):
            await sqlite_pool.query("INSERT INTO tasks (title) VALUES ($1)", ["a", "b"])
        assert (await sqlite_pool.query("SELECT COUNT(*) FROM tasks")).scalar() == 0

    @pytest.mark.asyncio
    async def test_health(self, sqlite_pool):
        health = await sqlite_pool.health()
        assert health["state"] == "ready"
        assert health["healthy"] is True
        assert health["backend"] == "sqlite"

    @pytest.mark.asyncio
    async def test_health_when_not_ready(self, sqlite_settings):
        health = await DatabasePool(sqlite_settings).health()
        assert health == {"state": "uninitialized", "backend": "sqlite", "healthy": False}


class TestAcquire:
    @pytest.mark.asyncio
    async def test_explicit_transaction_commit(self, sqlite_pool):
        conn = await sqlite_pool.acquire()
        try:
            await conn.query("BEGIN")
            await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["a"])
            await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["b"])
            await conn.query("COMMIT")
        finally:
            await conn.release()
        assert (await sqlite_pool.query("SELECT COUNT(*) FROM tasks")).scalar() == 2

    @pytest.mark.asyncio
    async def test_explicit_transaction_rollback(self, sqlite_pool):
        async with sqlite_pool.acquire() as conn:
            await conn.query("BEGIN")
            await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["a"])
            await conn.query("ROLLBACK")
        assert (await sqlite_pool.query("SELECT COUNT(*) FROM tasks")).scalar() == 0

    @pytest.mark.asyncio
    async def test_transaction_context_manager(self, sqlite_pool):
        async with sqlite_pool.acquire() as conn:
            with pytest.raises(RuntimeError):
                async with conn.transaction():
                    await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["a"])
                    raise RuntimeError("abort")
            async with conn.transaction():
                await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["b"])
        result = await sqlite_pool.query("SELECT title FROM tasks")
        assert result.rows == [{"title": "b"}]

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, sqlite_pool):
        conn = await sqlite_pool.acquire()
        await conn.release()
        await conn.release()
        assert conn.released
        with pytest.raises(NotInitializedError):
            await conn.query("SELECT 1")

    @pytest.mark.asyncio
    async def test_unfinished_transaction_rolled_back_on_release(self, sqlite_pool):
        async with sqlite_pool.acquire() as conn:
            await conn.query("BEGIN")
            await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["a"])
        assert (await sqlite_pool.query("SELECT COUNT(*) FROM tasks")).scalar() == 0

    @pytest.mark.asyncio
    async def test_pool_usable_after_handle_released(self, sqlite_pool):
        async with sqlite_pool.acquire() as conn:
            await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["a"])
        result = await sqlite_pool.query("SELECT COUNT(*) FROM tasks")
        assert result.scalar() == 1
