"""Tests for ``taskforge.core.returning`` - RETURNING emulation on SQLite."""

from __future__ import annotations

import asyncio
import json

import pytest

from taskforge.core.codec import StructuredFieldCodec
from taskforge.core.dialect import PostgreSQLDialect
from taskforge.core.errors import ConfigError, ConstraintViolationError, MalformedQueryError


async def add_user(pool, name="Ada", email="ada@example.com"):
    result = await pool.query("INSERT INTO users (name, email) VALUES ($1, $2) RETURNING *", [name, email])
    return result.first()


async def add_tasks(pool, *titles, status="not_started"):
    for title in titles:
        await pool.query("INSERT INTO tasks (title, status) VALUES ($1, $2)", [title, status])


class TestInsertReturning:
    @pytest.mark.asyncio
    async def test_returns_stored_row_with_defaults(self, sqlite_pool):
        result = await sqlite_pool.query("INSERT INTO tasks (title) VALUES ($1) RETURNING *", ["Install printer"])
        assert result.row_count == 1
        row = result.first()
        assert row["id"] == 1
        assert row["title"] == "Install printer"
        assert row["status"] == "not_started"
        assert row["priority"] == "medium"
        assert row["created_at"] is not None

    @pytest.mark.asyncio
    async def test_column_list(self, sqlite_pool):
        result = await sqlite_pool.query(
            "INSERT INTO tasks (title, priority) VALUES ($1, $2) RETURNING id, title", ["Order toner", "high"]
        )
        assert result.rows == [{"id": 1, "title": "Order toner"}]

    @pytest.mark.asyncio
    async def test_structured_value_stored_as_json_and_decoded(self, sqlite_pool):
        specs = {"ram": "16GB", "ssd": True, "ports": ["usb-c", "hdmi"]}
        result = await sqlite_pool.query(
            "INSERT INTO parc_informatique (type, marque, specifications, proprietaire) "
            "VALUES ($1, $2, $3, $4) RETURNING *",
            ["laptop", "Dell", specs, "Awa"],
        )
        assert result.first()["specifications"] == specs

        raw = await sqlite_pool.query("SELECT specifications || '' AS raw FROM parc_informatique")
        assert json.loads(raw.scalar()) == specs

    @pytest.mark.asyncio
    async def test_preserialized_json_not_double_encoded(self, sqlite_pool):
        specs = {"cpu": "i5"}
        result = await sqlite_pool.query(
            "INSERT INTO parc_informatique (type, marque, specifications, proprietaire) "
            "VALUES ($1, $2, $3, $4) RETURNING specifications",
            ["laptop", "HP", json.dumps(specs), "Moussa"],
        )
        assert result.first()["specifications"] == specs

    @pytest.mark.asyncio
    async def test_insert_or_ignore_skipped_row_returns_nothing(self, sqlite_pool):
        await add_user(sqlite_pool)
        result = await sqlite_pool.query(
            "INSERT OR IGNORE INTO users (name, email) VALUES ($1, $2) RETURNING *", ["Ada 2", "ada@example.com"]
        )
        assert result.rows == []
        assert result.row_count == 0

    @pytest.mark.asyncio
    async def test_constraint_violation_leaves_nothing_behind(self, sqlite_pool):
        await add_user(sqlite_pool)
        with pytest.raises(ConstraintViolationError):
            await add_user(sqlite_pool, name="Copy")
        count = await sqlite_pool.query("SELECT COUNT(*) AS n FROM users")
        assert count.scalar() == 1

    @pytest.mark.asyncio
    async def test_or_rollback_conflict_surfaces_constraint_violation(self, sqlite_pool):
        await add_user(sqlite_pool, email="a@x")
        with pytest.raises(ConstraintViolationError):
            await sqlite_pool.query(
                "INSERT OR ROLLBACK INTO users (name, email) VALUES ($1, $2) RETURNING *", ["Copy", "a@x"]
            )
        count = await sqlite_pool.query("SELECT COUNT(*) AS n FROM users")
        assert count.scalar() == 1

    @pytest.mark.asyncio
    async def test_concurrent_inserts_each_get_their_own_row(self, sqlite_pool):
        titles = [f"task-{i}" for i in range(20)]
        results = await asyncio.gather(
            *(sqlite_pool.query("INSERT INTO tasks (title) VALUES ($1) RETURNING id, title", [t]) for t in titles)
        )
        returned = [r.first() for r in results]
        assert [row["title"] for row in returned] == titles
        assert len({row["id"] for row in returned}) == 20


class TestUpdateReturning:
    @pytest.mark.asyncio
    async def test_update_changing_predicate_column_returns_all_matched_rows(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a", "b", "c")
        await add_tasks(sqlite_pool, "done", status="completed")

        result = await sqlite_pool.query(
            "UPDATE tasks SET status = $1 WHERE status = $2 RETURNING id, status",
            ["completed", "not_started"],
        )
        assert result.row_count == 3
        assert result.rows == [
            {"id": 1, "status": "completed"},
            {"id": 2, "status": "completed"},
            {"id": 3, "status": "completed"},
        ]

    @pytest.mark.asyncio
    async def test_no_match(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a")
        result = await sqlite_pool.query("UPDATE tasks SET title = $1 WHERE id = $2 RETURNING *", ["x", 99])
        assert result.rows == []
        assert result.row_count == 0

    @pytest.mark.asyncio
    async def test_markers_out_of_order_across_set_and_where(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a", "b")
        result = await sqlite_pool.query(
            "UPDATE tasks SET title = $2, priority = $3 WHERE id = $1 RETURNING id, title, priority",
            [2, "renamed", "low"],
        )
        assert result.rows == [{"id": 2, "title": "renamed", "priority": "low"}]
        untouched = await sqlite_pool.query("SELECT title FROM tasks WHERE id = $1", [1])
        assert untouched.scalar() == "a"

    @pytest.mark.asyncio
    async def test_update_without_where(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a", "b")
        result = await sqlite_pool.query("UPDATE tasks SET priority = 'high' RETURNING priority")
        assert result.row_count == 2
        assert [r["priority"] for r in result] == ["high", "high"]

    @pytest.mark.asyncio
    async def test_constraint_failure_is_atomic(self, sqlite_pool):
        await add_user(sqlite_pool, "Ada", "ada@example.com")
        await add_user(sqlite_pool, "Bob", "bob@example.com")
        with pytest.raises(ConstraintViolationError):
            await sqlite_pool.query("UPDATE users SET email = $1 RETURNING *", ["same@example.com"])
        emails = await sqlite_pool.query("SELECT email FROM users ORDER BY id")
        assert [r["email"] for r in emails] == ["ada@example.com", "bob@example.com"]

    @pytest.mark.asyncio
    async def test_where_with_subquery_marker(self, sqlite_pool):
        user = await add_user(sqlite_pool)
        await add_tasks(sqlite_pool, "a", "b")
        result = await sqlite_pool.query(
            "UPDATE tasks SET assignee_id = (SELECT id FROM users WHERE email = $1) WHERE title = $2 RETURNING assignee_id",
            ["ada@example.com", "b"],
        )
        assert result.rows == [{"assignee_id": user["id"]}]


class TestDeleteReturning:
    @pytest.mark.asyncio
    async def test_returns_deleted_rows(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a", "b", "c")
        result = await sqlite_pool.query("DELETE FROM tasks WHERE title <> $1 RETURNING *", ["b"])
        assert result.row_count == 2
        assert [r["title"] for r in result] == ["a", "c"]
        remaining = await sqlite_pool.query("SELECT title FROM tasks")
        assert remaining.rows == [{"title": "b"}]

    @pytest.mark.asyncio
    async def test_decodes_structured_columns(self, sqlite_pool):
        await sqlite_pool.query(
            "INSERT INTO parc_informatique (type, marque, specifications, proprietaire) VALUES ($1, $2, $3, $4)",
            ["laptop", "Dell", {"ram": "8GB"}, "Awa"],
        )
        result = await sqlite_pool.query("DELETE FROM parc_informatique RETURNING specifications")
        assert result.rows == [{"specifications": {"ram": "8GB"}}]


class TestUnemulable:
    @pytest.mark.asyncio
    async def test_insert_select_rejected_before_execution(self, sqlite_pool):
        await add_tasks(sqlite_pool, "a")
        with pytest.raises(MalformedQueryError):
            await sqlite_pool.query("INSERT INTO tasks (title) SELECT title FROM tasks RETURNING *")
        count = await sqlite_pool.query("SELECT COUNT(*) FROM tasks")
        assert count.scalar() == 1

    @pytest.mark.asyncio
    async def test_multi_row_values_rejected(self, sqlite_pool):
        with pytest.raises(MalformedQueryError):
            await sqlite_pool.query("INSERT INTO tasks (title) VALUES ($1), ($2) RETURNING id", ["a", "b"])
        count = await sqlite_pool.query("SELECT COUNT(*) FROM tasks")
        assert count.scalar() == 0

    @pytest.mark.asyncio
    async def test_update_or_ignore_returning_rejected_before_execution(self, sqlite_pool):
        await add_user(sqlite_pool, "Ada", "ada@example.com")
        bob = await add_user(sqlite_pool, "Bob", "bob@example.com")
        plain = await sqlite_pool.query(
            "UPDATE OR IGNORE users SET email = $1 WHERE id = $2", ["ada@example.com", bob["id"]]
        )
        assert plain.row_count == 0
        with pytest.raises(MalformedQueryError):
            await sqlite_pool.query(
                "UPDATE OR IGNORE users SET name = $1 WHERE id = $2 RETURNING *", ["Robert", bob["id"]]
            )
        names = await sqlite_pool.query("SELECT name FROM users ORDER BY id")
        assert [r["name"] for r in names] == ["Ada", "Bob"]


class TestInsideExplicitTransaction:
    @pytest.mark.asyncio
    async def test_emulation_nests_and_rolls_back_with_caller(self, sqlite_pool):
        async with sqlite_pool.acquire() as conn:
            await conn.query("BEGIN")
            row = (await conn.query("INSERT INTO tasks (title) VALUES ($1) RETURNING id", ["tmp"])).first()
            assert row == {"id": 1}
            await conn.query("ROLLBACK")
        count = await sqlite_pool.query("SELECT COUNT(*) FROM tasks")
        assert count.scalar() == 0

    @pytest.mark.asyncio
    async def test_or_rollback_conflict_ends_caller_transaction(self, sqlite_pool):
        await add_user(sqlite_pool, email="a@x")
        async with sqlite_pool.acquire() as conn:
            with pytest.raises(ConstraintViolationError):
                async with conn.transaction():
                    await conn.query("INSERT INTO tasks (title) VALUES ($1)", ["draft"])
                    await conn.query(
                        "INSERT OR ROLLBACK INTO users (name, email) VALUES ($1, $2) RETURNING id",
                        ["Copy", "a@x"],
                    )
        count = await sqlite_pool.query("SELECT COUNT(*) FROM tasks")
        assert count.scalar() == 0


class TestEmulatorConstruction:
    def test_requires_qmark_dialect(self):
        from taskforge.core.returning import ReturningEmulator

        with pytest.raises(ConfigError):
            ReturningEmulator(PostgreSQLDialect(), StructuredFieldCodec(), lambda table: "id")
