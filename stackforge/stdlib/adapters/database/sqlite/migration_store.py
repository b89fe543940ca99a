"""SQLite migration store with async support."""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from stackforge.kernel.domain.migration import MigrationRecord, MigrationScript
from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.migration_store import MigrationStore

logger = get_logger(__name__)

MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    run_on TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


def _parse_run_on(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    # CURRENT_TIMESTAMP is UTC in "YYYY-MM-DD HH:MM:SS" form
    return datetime.fromisoformat(str(value)).replace(tzinfo=UTC).timestamp()


class SQLiteMigrationStore(MigrationStore):
    """Applies change scripts to a SQLite database.

    Every script runs inside a single transaction. A script marks itself
    applied by inserting its file name into the ``migrations`` table, for
    example::

        CREATE TABLE IF NOT EXISTS drafts (id INTEGER PRIMARY KEY);
        INSERT INTO migrations (name) VALUES ('003_create_drafts.sql');

    so a script that fails partway leaves neither its changes nor its
    record behind. Scripts must not issue their own BEGIN/COMMIT.
    """

    def __init__(self, db_path: str = ":memory:", timeout: float = 5.0) -> None:
        """Initialize the store.

        Args
        ----
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
            timeout: Connection timeout in seconds. Default: 5.0.
        """
        self.db_path = Path(db_path) if db_path != ":memory:" else db_path
        self.timeout = timeout
        self.connection: aiosqlite.Connection | None = None

    async def _connect(self) -> aiosqlite.Connection:
        if self.connection is None:
            self.connection = await aiosqlite.connect(str(self.db_path), timeout=self.timeout)
        return self.connection

    async def aensure_ready(self) -> None:
        """Open the database and create the ``migrations`` table if missing."""
        connection = await self._connect()
        await connection.execute("SELECT 1")
        await connection.execute(MIGRATIONS_TABLE_SQL)
        await connection.commit()

    async def aapplied(self) -> list[MigrationRecord]:
        connection = await self._connect()
        try:
            async with connection.execute(
                "SELECT name, run_on FROM migrations ORDER BY id ASC"
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.OperationalError as e:
            # Table not created yet: nothing applied
            logger.debug("Could not read migrations table: {error}", error=e)
            return []
        return [MigrationRecord(script_id=row[0], applied_at=_parse_run_on(row[1])) for row in rows]

    async def aapply(self, script: MigrationScript) -> None:
        connection = await self._connect()
        try:
            await connection.executescript(f"BEGIN;\n{script.body}\n")
            await connection.commit()
        except aiosqlite.Error as e:
            logger.error(
                "Database error in migration {script}: {error}", script=script.script_id, error=e
            )
            await connection.rollback()
            raise

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
