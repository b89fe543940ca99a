"""Port interfaces for local resource (TCP port) probing and reclaiming."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class ResourceProbe(Protocol):
    """Cheap, fast answer to "is this local port bound right now?"."""

    @abstractmethod
    async def ais_in_use(self, port: int) -> bool:
        """Return True if ``port`` is currently bound on the local host."""
        ...

    @abstractmethod
    async def adescribe_owner(self, port: int) -> str | None:
        """Return a human readable description of what holds ``port``, if known."""
        ...


@runtime_checkable
class PortReclaimer(Protocol):
    """Last-resort termination of the process bound to a port."""

    @abstractmethod
    async def aterminate_owner(self, port: int) -> bool:
        """Terminate whatever process holds ``port``.

        Returns
        -------
        bool
            True if at least one process was signalled
        """
        ...
