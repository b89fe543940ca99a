"""SQLite adapters."""

from stackforge.stdlib.adapters.database.sqlite.migration_store import SQLiteMigrationStore

__all__ = ["SQLiteMigrationStore"]
