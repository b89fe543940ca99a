"""Phase gates built from the resource and health components.

A gate runs once before the units of a phase and aborts the run by raising.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from stackforge.kernel.domain.resources import ResourceRequirement
from stackforge.kernel.exceptions import ResourceConflictError
from stackforge.kernel.orchestration.conflict_resolver import ConflictResolver
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.pipeline import PhaseGate
from stackforge.kernel.orchestration.run_context import RunContext


def conflict_gate(
    resolver: ConflictResolver, required: Iterable[ResourceRequirement | int]
) -> PhaseGate:
    """Gate that frees ``required`` ports or raises ``ResourceConflictError``."""
    requirements = [ResourceRequirement.coerce(r) for r in required]

    async def gate(context: RunContext) -> None:
        context.raise_if_cancelled()
        report = await resolver.ensure_resources_free(requirements)
        if not report.success:
            raise ResourceConflictError(report.conflicts)

    return gate


def health_gate(
    monitor: HealthMonitor, names: Sequence[str], timeout: float | None = None
) -> PhaseGate:
    """Gate that waits for ``names`` to become healthy.

    Health progress is reported as the sub-progress of the gated phase.
    """

    async def gate(context: RunContext) -> None:
        await monitor.ensure_healthy(
            names,
            timeout,
            on_progress=lambda percent, message: context.report_progress(percent, message),
            context=context,
        )

    return gate


__all__ = ["conflict_gate", "health_gate"]
