"""In-memory artifact store for testing purposes."""

from __future__ import annotations

from stackforge.kernel.domain.artifacts import BackupRecord
from stackforge.kernel.ports.artifact_store import ArtifactStore
from stackforge.kernel.ports.process import ProgressCallback, ProgressFragment


class InMemoryArtifactStore(ArtifactStore):
    """Keeps the active artifact id and its backups in memory.

    ``abuild(source)`` activates an artifact whose id is ``source``.

    Parameters
    ----------
    current : str | None
        Initially active artifact; None simulates a first install
    fetch_failures : int
        Number of initial ``afetch`` calls that raise
    build_failures : int
        Number of initial ``abuild`` calls that raise
    backup_error : Exception | None
        Raised by ``abackup``
    restore_error : Exception | None
        Raised by ``arestore``
    """

    def __init__(
        self,
        current: str | None = "v1",
        *,
        fetch_failures: int = 0,
        build_failures: int = 0,
        backup_error: Exception | None = None,
        restore_error: Exception | None = None,
    ) -> None:
        self.current = current
        self.backups: list[BackupRecord] = []
        self.fetch_failures = fetch_failures
        self.build_failures = build_failures
        self.backup_error = backup_error
        self.restore_error = restore_error
        self.calls: list[str] = []
        self._counter = 0

    async def acurrent(self) -> str | None:
        return self.current

    async def abackup(self, artifact_id: str) -> BackupRecord:
        self.calls.append("backup")
        if self.backup_error is not None:
            raise self.backup_error
        self._counter += 1
        record = BackupRecord(
            artifact_id=artifact_id,
            backup_tag=f"backup-{self._counter}",
            created_at=float(self._counter),
        )
        self.backups.append(record)
        return record

    async def arestore(self, record: BackupRecord) -> None:
        self.calls.append("restore")
        if self.restore_error is not None:
            raise self.restore_error
        self.current = record.artifact_id

    async def adiscard(self, record: BackupRecord) -> None:
        self.calls.append("discard")
        if record in self.backups:
            self.backups.remove(record)

    async def afetch(self, source: str, on_progress: ProgressCallback | None = None) -> None:
        self.calls.append("fetch")
        if self.fetch_failures > 0:
            self.fetch_failures -= 1
            raise ConnectionError(f"could not fetch {source}")
        if on_progress is not None:
            on_progress(ProgressFragment(message=f"Fetched {source}", percent=100))

    async def abuild(self, source: str, on_progress: ProgressCallback | None = None) -> str:
        self.calls.append("build")
        if self.build_failures > 0:
            self.build_failures -= 1
            raise RuntimeError(f"build of {source} failed")
        if on_progress is not None:
            on_progress(ProgressFragment(message=f"Built {source}", percent=100))
        self.current = source
        return source

    async def aprune_backups(self, keep: int) -> list[BackupRecord]:
        ordered = sorted(self.backups, key=lambda record: record.created_at, reverse=True)
        removed = ordered[keep:]
        self.backups = ordered[:keep]
        return removed
