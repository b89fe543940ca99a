"""Change scripts and their applied records."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from pathlib import Path

# NNN_description.sql
MIGRATION_FILE_PATTERN = re.compile(r"^(\d+)_(.+)\.sql$")
_VERSION_PREFIX = re.compile(r"^(\d+)_")


def parse_version(script_id: str) -> int:
    """Return the numeric version prefix of ``script_id`` (0 when absent).

    Examples
    --------
    >>> parse_version("010_add_index.sql")
    10
    >>> parse_version("seed.sql")
    0
    """
    match = _VERSION_PREFIX.match(script_id)
    return int(match.group(1)) if match else 0


@dataclass(frozen=True, slots=True)
class MigrationScript:
    """One change script; ``script_id`` is its file name."""

    script_id: str
    body: str = ""
    path: Path | None = None

    @property
    def version(self) -> int:
        return parse_version(self.script_id)

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.version, self.script_id)


@dataclass(frozen=True, slots=True)
class MigrationRecord:
    """Append-only marker of an applied script."""

    script_id: str
    applied_at: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class MigrationResult:
    """Outcome of ``MigrationRunner.run_pending``.

    ``executed`` lists the scripts applied in this run, in order. On failure
    it is the prefix that succeeded before ``failed_script``.
    """

    success: bool
    executed: tuple[str, ...] = ()
    pending: tuple[str, ...] = ()
    failed_script: str | None = None
    error: str | None = None

    @property
    def message(self) -> str:
        if self.success:
            if not self.executed:
                return "No pending migrations"
            return f"Applied {len(self.executed)} migration(s)"
        if self.failed_script is None:
            return f"Migrations not run: {self.error}"
        applied = len(self.executed)
        return f"Migration '{self.failed_script}' failed after {applied} applied: {self.error}"
