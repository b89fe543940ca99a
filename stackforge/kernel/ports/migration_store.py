"""Port interface for the persistent store that migrations change."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from stackforge.kernel.domain.migration import MigrationRecord, MigrationScript


@runtime_checkable
class MigrationStore(Protocol):
    """Executes change scripts and lists the ones already applied.

    A script records its own completion as part of its effect; the store
    never writes a completion marker on the runner's behalf.

    Optional Methods
    ----------------
    Adapters may optionally implement:
    - aensure_ready(): Verify connectivity and create bookkeeping tables
    - close(): Release connections
    """

    @abstractmethod
    async def aapplied(self) -> list[MigrationRecord]:
        """Return the records of every applied script."""
        ...

    @abstractmethod
    async def aapply(self, script: MigrationScript) -> None:
        """Execute ``script`` as one atomic unit.

        Raises
        ------
        Exception
            Any failure; the script's effect, including its record, is rolled back
        """
        ...
