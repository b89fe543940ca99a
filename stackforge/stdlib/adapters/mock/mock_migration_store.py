"""In-memory migration store for testing purposes."""

from __future__ import annotations

import time
from collections.abc import Iterable

from stackforge.kernel.domain.migration import MigrationRecord, MigrationScript
from stackforge.kernel.ports.migration_store import MigrationStore


class InMemoryMigrationStore(MigrationStore):
    """Records applied scripts in a list.

    Applying a script appends its record as part of the same call, the way a
    real script inserts its own marker.

    Parameters
    ----------
    applied : Iterable[str]
        Script ids already applied
    fail_on : Iterable[str]
        Script ids whose application raises
    ready_error : Exception | None
        Raised by ``aensure_ready``
    """

    def __init__(
        self,
        applied: Iterable[str] = (),
        *,
        fail_on: Iterable[str] = (),
        ready_error: Exception | None = None,
    ) -> None:
        self.records = [MigrationRecord(script_id=script_id) for script_id in applied]
        self.fail_on = set(fail_on)
        self.ready_error = ready_error
        self.executed: list[str] = []

    async def aensure_ready(self) -> None:
        if self.ready_error is not None:
            raise self.ready_error

    async def aapplied(self) -> list[MigrationRecord]:
        return list(self.records)

    async def aapply(self, script: MigrationScript) -> None:
        if script.script_id in self.fail_on:
            raise RuntimeError(f"syntax error in {script.script_id}")
        self.executed.append(script.script_id)
        self.records.append(MigrationRecord(script_id=script.script_id, applied_at=time.time()))
