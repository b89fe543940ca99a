"""Detection and remediation of local port conflicts.

Stale containers left behind by a crashed run are the most common reason a
required port is taken, and they can be cleaned up automatically. The
resolver therefore runs an escalating remediate-and-recheck loop instead of
failing on the first probe:

1. probe every required port, succeed at once if all are free;
2. run the standard remediation strategies (remove owned containers, then
   shut the owned stack down gracefully) and wait for the platform's
   settle time;
3. probe again; on the final attempt run the last-resort strategies
   (terminate the process bound to the port) where the platform supports
   them, settle once more and probe a final time;
4. report each port still taken, with its holder where known.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from stackforge.kernel.domain.resources import (
    ConflictReport,
    ResourceConflict,
    ResourceRequirement,
)
from stackforge.kernel.logging import get_logger
from stackforge.kernel.orchestration.models import DEFAULT_OWNED_PREFIX, ConflictResolverConfig
from stackforge.kernel.ports.resource_probe import PortReclaimer, ResourceProbe
from stackforge.kernel.ports.services import ServiceLifecycle

logger = get_logger(__name__)

RemediationAction = Callable[[Sequence[ResourceConflict]], Awaitable[object]]

POSIX_PLATFORMS = frozenset({"linux", "darwin"})


@dataclass(frozen=True, slots=True)
class RemediationStrategy:
    """One remediation step, tagged with the platforms it applies to.

    Attributes
    ----------
    name : str
        Name used in logs and reports
    action : RemediationAction
        Coroutine receiving the ports still in conflict
    platforms : frozenset[str] | None
        ``sys.platform`` prefixes the strategy runs on; None means all
    last_resort : bool
        Only run on the final attempt
    """

    name: str
    action: RemediationAction
    platforms: frozenset[str] | None = None
    last_resort: bool = False

    def applies_on(self, platform: str) -> bool:
        if self.platforms is None:
            return True
        return any(platform.startswith(prefix) for prefix in self.platforms)


def default_strategies(
    lifecycle: ServiceLifecycle | None = None,
    reclaimer: PortReclaimer | None = None,
    *,
    owned_prefix: str = DEFAULT_OWNED_PREFIX,
) -> list[RemediationStrategy]:
    """Build the standard escalation: owned containers, graceful stop, then kill.

    Only holders named with ``owned_prefix`` are removed by the first step.
    """
    strategies: list[RemediationStrategy] = []

    if lifecycle is not None:

        async def remove_owned(_: Sequence[ResourceConflict]) -> None:
            removed = await lifecycle.aremove_owned(owned_prefix)
            if removed:
                logger.info("Removed owned holders: {names}", names=", ".join(removed))

        async def stop_stack(_: Sequence[ResourceConflict]) -> None:
            await lifecycle.astop()

        strategies.append(RemediationStrategy("remove-owned-containers", remove_owned))
        strategies.append(RemediationStrategy("stop-owned-stack", stop_stack))

    if reclaimer is not None:

        async def terminate_owners(conflicts: Sequence[ResourceConflict]) -> None:
            for conflict in conflicts:
                if await reclaimer.aterminate_owner(conflict.resource_id):
                    logger.warning(
                        "Terminated process holding port {port}", port=conflict.resource_id
                    )

        strategies.append(
            RemediationStrategy(
                "terminate-port-owner",
                terminate_owners,
                platforms=POSIX_PLATFORMS,
                last_resort=True,
            )
        )

    return strategies


async def check_port_conflicts(
    probe: ResourceProbe, required: Iterable[ResourceRequirement | int]
) -> list[ResourceConflict]:
    """Return the required ports currently in use, without remediating."""
    conflicts: list[ResourceConflict] = []
    for requirement in (ResourceRequirement.coerce(r) for r in required):
        if not await probe.ais_in_use(requirement.port):
            continue
        try:
            owner = await probe.adescribe_owner(requirement.port)
        except Exception as exc:
            logger.debug(
                "Could not describe owner of {port}: {error}", port=requirement.port, error=exc
            )
            owner = None
        conflicts.append(
            ResourceConflict(
                resource_id=requirement.port,
                owner_description=owner,
                label=requirement.label,
                fixed_by_design=requirement.fixed,
            )
        )
    return conflicts


class ConflictResolver:
    """Frees required ports through an ordered list of remediation strategies.

    Parameters
    ----------
    probe : ResourceProbe
        Port availability probe
    strategies : Sequence[RemediationStrategy]
        Standard and last-resort strategies, in escalation order
    config : ConflictResolverConfig | None
        Attempt count and settle times
    platform : str
        Platform the strategies are filtered for, ``sys.platform`` by default
    """

    def __init__(
        self,
        probe: ResourceProbe,
        strategies: Sequence[RemediationStrategy] = (),
        config: ConflictResolverConfig | None = None,
        *,
        platform: str = sys.platform,
    ) -> None:
        self.probe = probe
        self.config = config or ConflictResolverConfig()
        self.platform = platform
        applicable = [s for s in strategies if s.applies_on(platform)]
        self._standard = [s for s in applicable if not s.last_resort]
        self._last_resort = [s for s in applicable if s.last_resort]

    @property
    def settle_time(self) -> float:
        return self.config.settle_time_for(self.platform)

    async def _settle(self) -> None:
        if self.settle_time > 0:
            await asyncio.sleep(self.settle_time)

    async def _run(
        self,
        strategies: Sequence[RemediationStrategy],
        conflicts: Sequence[ResourceConflict],
        executed: list[str],
    ) -> None:
        for strategy in strategies:
            logger.info(
                "Running remediation '{name}' for port(s) {ports}",
                name=strategy.name,
                ports=", ".join(str(c.resource_id) for c in conflicts),
            )
            executed.append(strategy.name)
            try:
                await strategy.action(conflicts)
            except Exception as exc:
                # A failed step must not stop the escalation
                logger.warning(
                    "Remediation '{name}' failed: {error}", name=strategy.name, error=exc
                )

    async def ensure_resources_free(
        self, required: Iterable[ResourceRequirement | int]
    ) -> ConflictReport:
        """Make sure every required port is free.

        Returns
        -------
        ConflictReport
            Success, or the ports that could not be automatically freed
        """
        requirements = [ResourceRequirement.coerce(r) for r in required]
        executed: list[str] = []
        conflicts: list[ResourceConflict] = []
        max_attempts = self.config.max_attempts

        for attempt in range(1, max_attempts + 1):
            conflicts = await check_port_conflicts(self.probe, requirements)
            if not conflicts:
                return self._success(attempt, executed)

            logger.warning(
                "Port conflict(s) on attempt {attempt}/{max}: {ports}",
                attempt=attempt,
                max=max_attempts,
                ports=", ".join(str(c.resource_id) for c in conflicts),
            )
            await self._run(self._standard, conflicts, executed)
            await self._settle()

            conflicts = await check_port_conflicts(self.probe, requirements)
            if not conflicts:
                return self._success(attempt, executed)

            if attempt == max_attempts and self._last_resort:
                await self._run(self._last_resort, conflicts, executed)
                await self._settle()
                conflicts = await check_port_conflicts(self.probe, requirements)
                if not conflicts:
                    return self._success(attempt, executed)

        report = ConflictReport(
            success=False,
            conflicts=tuple(conflicts),
            attempts=max_attempts,
            strategies_run=tuple(executed),
        )
        logger.error("{message}", message=report.message)
        return report

    def _success(self, attempt: int, executed: list[str]) -> ConflictReport:
        if executed:
            logger.info("Required ports freed after {attempt} attempt(s)", attempt=attempt)
        return ConflictReport(success=True, attempts=attempt, strategies_run=tuple(executed))
