"""Port interfaces for the running service stack."""

from abc import abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from stackforge.kernel.domain.health import ServiceHealthSample


@runtime_checkable
class ServiceInventory(Protocol):
    """Run/health classification of named services, however they were started."""

    @abstractmethod
    async def asample(self, names: Sequence[str]) -> list[ServiceHealthSample]:
        """Sample every named service in one batch.

        Services that do not exist yet are simply absent from the result.
        """
        ...


@runtime_checkable
class ServiceLifecycle(Protocol):
    """Start/stop control over the owned service stack."""

    @abstractmethod
    async def ais_running(self) -> bool:
        """Return True if the stack is currently running."""
        ...

    @abstractmethod
    async def astart(self) -> None:
        """Start the stack using the active artifact."""
        ...

    @abstractmethod
    async def astop(self) -> None:
        """Gracefully stop the stack."""
        ...

    @abstractmethod
    async def aremove_owned(self, prefix: str) -> list[str]:
        """Forcefully remove holders whose name starts with ``prefix``.

        Returns
        -------
        list[str]
            Names of the removed holders (e.g. stale containers)
        """
        ...
