"""Tests for SQLiteMigrationStore."""

from pathlib import Path

import aiosqlite
import pytest

from stackforge.kernel.domain.migration import MigrationScript
from stackforge.kernel.orchestration.migration_runner import (
    MigrationRunner,
    load_migration_scripts,
)
from stackforge.stdlib.adapters.database.sqlite import SQLiteMigrationStore

CREATE_USERS = """
CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT);
INSERT INTO migrations (name) VALUES ('1_users.sql');
"""

BROKEN = """
CREATE TABLE drafts (id INTEGER PRIMARY KEY);
INSERT INTO missing_table VALUES (1);
INSERT INTO migrations (name) VALUES ('2_drafts.sql');
"""


@pytest.fixture
async def store(tmp_path: Path):
    store = SQLiteMigrationStore(str(tmp_path / "app.db"))
    await store.aensure_ready()
    yield store
    await store.close()


async def table_names(store: SQLiteMigrationStore) -> set[str]:
    connection = await store._connect()
    async with connection.execute("SELECT name FROM sqlite_master WHERE type='table'") as cursor:
        return {row[0] for row in await cursor.fetchall()}


class TestSQLiteMigrationStore:
    """Tests for SQLiteMigrationStore."""

    @pytest.mark.asyncio
    async def test_applied_is_empty_before_setup(self) -> None:
        store = SQLiteMigrationStore()
        try:
            assert await store.aapplied() == []
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_script_records_itself(self, store: SQLiteMigrationStore) -> None:
        await store.aapply(MigrationScript("1_users.sql", body=CREATE_USERS))

        records = await store.aapplied()

        assert [r.script_id for r in records] == ["1_users.sql"]
        assert records[0].applied_at > 0
        assert "users" in await table_names(store)

    @pytest.mark.asyncio
    async def test_failed_script_leaves_nothing_behind(self, store: SQLiteMigrationStore) -> None:
        with pytest.raises(aiosqlite.Error):
            await store.aapply(MigrationScript("2_drafts.sql", body=BROKEN))

        assert await store.aapplied() == []
        assert "drafts" not in await table_names(store)

    @pytest.mark.asyncio
    async def test_ensure_ready_is_idempotent(self, store: SQLiteMigrationStore) -> None:
        await store.aapply(MigrationScript("1_users.sql", body=CREATE_USERS))
        await store.aensure_ready()
        assert len(await store.aapplied()) == 1

    @pytest.mark.asyncio
    async def test_runner_against_sqlite(self, tmp_path: Path) -> None:
        scripts_dir = tmp_path / "migrations"
        scripts_dir.mkdir()
        (scripts_dir / "1_users.sql").write_text(CREATE_USERS, encoding="utf-8")
        (scripts_dir / "2_posts.sql").write_text(
            "CREATE TABLE posts (id INTEGER PRIMARY KEY);\n"
            "INSERT INTO migrations (name) VALUES ('2_posts.sql');\n",
            encoding="utf-8",
        )
        store = SQLiteMigrationStore(str(tmp_path / "app.db"))
        try:
            runner = MigrationRunner(store)
            scripts = load_migration_scripts(scripts_dir)

            first = await runner.run_pending(scripts)
            second = await runner.run_pending(scripts)
        finally:
            await store.close()

        assert first.executed == ("1_users.sql", "2_posts.sql")
        assert second.success is True
        assert second.executed == ()
