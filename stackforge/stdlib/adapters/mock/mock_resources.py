"""Mock port probe and reclaimer for testing purposes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from stackforge.kernel.ports.resource_probe import PortReclaimer, ResourceProbe


class MockResourceProbe(ResourceProbe):
    """In-memory set of bound ports.

    Examples
    --------
    Example usage::

        probe = MockResourceProbe(in_use=[8080], owners={8080: "nginx (pid 42)"})
        assert await probe.ais_in_use(8080)
        probe.release(8080)
    """

    def __init__(
        self, in_use: Iterable[int] = (), owners: Mapping[int, str] | None = None
    ) -> None:
        self.in_use: set[int] = set(in_use)
        self.owners: dict[int, str] = dict(owners or {})
        self.probe_count = 0

    def occupy(self, port: int, owner: str | None = None) -> None:
        self.in_use.add(port)
        if owner is not None:
            self.owners[port] = owner

    def release(self, port: int) -> None:
        self.in_use.discard(port)
        self.owners.pop(port, None)

    async def ais_in_use(self, port: int) -> bool:
        self.probe_count += 1
        return port in self.in_use

    async def adescribe_owner(self, port: int) -> str | None:
        return self.owners.get(port)


class MockPortReclaimer(PortReclaimer):
    """Frees ports of a :class:`MockResourceProbe` when asked to terminate their owner.

    Parameters
    ----------
    probe : MockResourceProbe
        Probe whose ports are released
    terminable : Iterable[int] | None
        Ports whose owner can be terminated; None means every port
    """

    def __init__(self, probe: MockResourceProbe, terminable: Iterable[int] | None = None) -> None:
        self.probe = probe
        self.terminable = set(terminable) if terminable is not None else None
        self.calls: list[int] = []

    async def aterminate_owner(self, port: int) -> bool:
        self.calls.append(port)
        if port not in self.probe.in_use:
            return False
        if self.terminable is not None and port not in self.terminable:
            return False
        self.probe.release(port)
        return True
