"""Mock service inventory and lifecycle for testing purposes."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from stackforge.kernel.domain.health import HealthState, ServiceHealthSample
from stackforge.kernel.ports.services import ServiceInventory, ServiceLifecycle
from stackforge.stdlib.adapters.mock.mock_resources import MockResourceProbe

Sampler = Callable[[Sequence[str], int], list[ServiceHealthSample]]


class MockServiceInventory(ServiceInventory):
    """Returns configured health samples.

    Either keeps a static table of samples (``set_state``) or delegates to
    a ``sampler(names, poll_number)`` callable for scripted sequences.

    Examples
    --------
    Services becoming healthy on the third poll::

        def sampler(names, poll):
            health = HealthState.HEALTHY if poll >= 3 else HealthState.STARTING
            return [ServiceHealthSample(n, running=True, health=health) for n in names]

        inventory = MockServiceInventory(sampler=sampler)
    """

    def __init__(
        self,
        samples: Iterable[ServiceHealthSample] = (),
        *,
        sampler: Sampler | None = None,
        error: Exception | None = None,
    ) -> None:
        self.samples = {sample.name: sample for sample in samples}
        self.sampler = sampler
        self.error = error
        self.polls = 0

    def set_state(
        self, name: str, running: bool = True, health: HealthState = HealthState.NONE
    ) -> None:
        self.samples[name] = ServiceHealthSample(name, running, health)

    async def asample(self, names: Sequence[str]) -> list[ServiceHealthSample]:
        self.polls += 1
        if self.error is not None:
            raise self.error
        if self.sampler is not None:
            return self.sampler(names, self.polls)
        return [self.samples[name] for name in names if name in self.samples]


class MockServiceLifecycle(ServiceLifecycle):
    """Records start/stop calls and optionally frees probe ports.

    Parameters
    ----------
    running : bool
        Initial running state
    owned : Iterable[str]
        Names of stale holders; ``aremove_owned`` removes those matching its prefix
    probe : MockResourceProbe | None
        Probe whose ``owned_ports`` are released on removal or stop
    owned_ports : Iterable[int]
        Ports held by owned holders
    start_errors : Iterable[Exception | None]
        Per-call outcomes of ``astart``; exhausted means success
    stop_error : Exception | None
        Raised by every ``astop``
    """

    def __init__(
        self,
        running: bool = False,
        *,
        owned: Iterable[str] = (),
        probe: MockResourceProbe | None = None,
        owned_ports: Iterable[int] = (),
        start_errors: Iterable[Exception | None] = (),
        stop_error: Exception | None = None,
    ) -> None:
        self.running = running
        self.owned = list(owned)
        self.probe = probe
        self.owned_ports = set(owned_ports)
        self.start_errors = list(start_errors)
        self.stop_error = stop_error
        self.calls: list[str] = []

    def _release_owned_ports(self) -> None:
        if self.probe is not None:
            for port in self.owned_ports:
                self.probe.release(port)

    async def ais_running(self) -> bool:
        return self.running

    async def astart(self) -> None:
        self.calls.append("start")
        if self.start_errors and (error := self.start_errors.pop(0)) is not None:
            raise error
        self.running = True

    async def astop(self) -> None:
        self.calls.append("stop")
        if self.stop_error is not None:
            raise self.stop_error
        self.running = False
        self._release_owned_ports()

    async def aremove_owned(self, prefix: str) -> list[str]:
        self.calls.append("remove_owned")
        removed = [name for name in self.owned if name.startswith(prefix)]
        self.owned = [name for name in self.owned if not name.startswith(prefix)]
        if removed:
            self._release_owned_ports()
        return removed
