"""Port interface for deployable artifacts and their backups."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from stackforge.kernel.domain.artifacts import BackupRecord
from stackforge.kernel.ports.process import ProgressCallback


@runtime_checkable
class ArtifactStore(Protocol):
    """Holds the active artifact (e.g. a ``latest`` image tag) and its backups.

    Fetch and build must clean up their own partial output on failure so
    they can be retried verbatim.
    """

    @abstractmethod
    async def acurrent(self) -> str | None:
        """Return the id of the active artifact, or None if nothing is deployed."""
        ...

    @abstractmethod
    async def abackup(self, artifact_id: str) -> BackupRecord:
        """Save the active artifact under a backup tag."""
        ...

    @abstractmethod
    async def arestore(self, record: BackupRecord) -> None:
        """Make the backed up artifact the active one again."""
        ...

    @abstractmethod
    async def adiscard(self, record: BackupRecord) -> None:
        """Drop a backup that has been consumed by a rollback."""
        ...

    @abstractmethod
    async def afetch(self, source: str, on_progress: ProgressCallback | None = None) -> None:
        """Fetch the new artifact sources."""
        ...

    @abstractmethod
    async def abuild(self, source: str, on_progress: ProgressCallback | None = None) -> str:
        """Build the fetched sources and activate the result.

        Returns
        -------
        str
            Id of the newly active artifact
        """
        ...

    @abstractmethod
    async def aprune_backups(self, keep: int) -> list[BackupRecord]:
        """Delete all but the ``keep`` most recent backups; return the deleted ones."""
        ...
