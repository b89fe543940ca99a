"""Database adapters."""

from stackforge.stdlib.adapters.database.sqlite import SQLiteMigrationStore

__all__ = ["SQLiteMigrationStore"]
