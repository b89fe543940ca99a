"""Phased execution of dependency-ordered units.

A :class:`PhasePipeline` runs each configured :class:`Phase` over every
unit it applies to, strictly sequentially: phase N never starts before
phase N-1 finished for all required units. Per unit failure policy:

- ``optional`` units and units with ``continue_on_error`` for the phase
  (or phases declared ``continue_on_error`` as a whole) fail softly: the
  error is logged and recorded as non-fatal;
- any other failure aborts the whole run at once.

Progress is the weighted sum of per-phase completion, including the
fractional sub-progress an executor reports for the unit in flight, and
never decreases within a run.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from stackforge.kernel.domain.dependency_graph import DependencyGraph
from stackforge.kernel.domain.pipeline_run import PipelineResult, PipelineRun, RunStatus
from stackforge.kernel.domain.unit import StackDefinition, Unit
from stackforge.kernel.exceptions import (
    CycleDetectedError,
    PipelineCancelledError,
    ValidationError,
)
from stackforge.kernel.logging import get_logger, reset_correlation_id, set_correlation_id
from stackforge.kernel.orchestration.events import (
    Event,
    PhaseCompleted,
    PhaseStarted,
    PipelineFinished,
    PipelineProgress,
    UnitCompleted,
    UnitFailed,
    UnitSkipped,
    UnitStarted,
)
from stackforge.kernel.orchestration.run_context import ActiveRunGuard, RunContext

logger = get_logger(__name__)

UnitExecutor = Callable[[Unit, RunContext], Awaitable[Any]]
CompletionCheck = Callable[[Unit], Awaitable[bool]]
PhaseGate = Callable[[RunContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Phase:
    """One stage of the pipeline.

    Attributes
    ----------
    name : str
        Phase name, e.g. "clone" or "build"
    executor : UnitExecutor
        Coroutine function processing one unit; raising means failure
    weight : float
        Relative share of overall progress
    is_complete : CompletionCheck | None
        Idempotent pre-check; when it reports the unit's artifact as
        already present, the unit is recorded as succeeded without executing
    continue_on_error : bool
        Tolerate failures of every unit in this phase
    applies_to : Callable[[Unit], bool] | None
        Restricts the phase to a subset of units
    gate : PhaseGate | None
        Runs once before the phase's units (e.g. port or health checks);
        raising aborts the run
    """

    name: str
    executor: UnitExecutor
    weight: float = 1.0
    is_complete: CompletionCheck | None = None
    continue_on_error: bool = False
    applies_to: Callable[[Unit], bool] | None = None
    gate: PhaseGate | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("phase.name", "cannot be empty")
        if self.weight < 0:
            raise ValidationError("phase.weight", "must be non-negative", self.weight)

    def units_for(self, ordered: Iterable[Unit]) -> list[Unit]:
        if self.applies_to is None:
            return list(ordered)
        return [unit for unit in ordered if self.applies_to(unit)]

    def tolerates(self, unit: Unit) -> bool:
        """Whether a failure of ``unit`` in this phase is swallowed."""
        return unit.optional or self.continue_on_error or self.name in unit.continue_on_error


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    """Per-run switches.

    Attributes
    ----------
    force : bool
        Ignore idempotent pre-checks and execute every unit
    skip_phases : frozenset[str]
        Phases not run at all in this run
    """

    force: bool = False
    skip_phases: frozenset[str] = field(default_factory=frozenset)


class ProgressTracker:
    """Weighted, monotonically non-decreasing progress across phases.

    Examples
    --------
    >>> tracker = ProgressTracker({"clone": 1.0, "build": 3.0}, {"clone": 2, "build": 1})
    >>> tracker.complete_item("clone")
    12.5
    >>> tracker.set_sub_progress("build", 50)
    50.0
    >>> tracker.complete_phase("clone")
    62.5
    """

    def __init__(self, weights: dict[str, float], item_counts: dict[str, int]) -> None:
        total = sum(weights.values())
        if total > 0:
            self._weights = {name: weight / total * 100.0 for name, weight in weights.items()}
        else:
            # All phases weightless: share progress equally
            share = 100.0 / len(weights) if weights else 0.0
            self._weights = dict.fromkeys(weights, share)
        self._items = dict(item_counts)
        self._done = dict.fromkeys(weights, 0)
        self._fraction = dict.fromkeys(weights, 0.0)
        self._closed: set[str] = set()
        self._last = 0.0

    @property
    def percent(self) -> float:
        return self._last

    def _compute(self) -> float:
        total = 0.0
        for name, weight in self._weights.items():
            if name in self._closed:
                total += weight
                continue
            items = self._items.get(name, 0)
            if items:
                total += weight * min(1.0, (self._done[name] + self._fraction[name]) / items)
        return min(100.0, total)

    def _update(self) -> float:
        self._last = max(self._last, self._compute())
        return self._last

    def set_sub_progress(self, phase: str, percent: float) -> float:
        self._fraction[phase] = max(0.0, min(100.0, percent)) / 100.0
        return self._update()

    def complete_item(self, phase: str) -> float:
        self._done[phase] += 1
        self._fraction[phase] = 0.0
        return self._update()

    def complete_phase(self, phase: str) -> float:
        self._closed.add(phase)
        return self._update()

    def finish(self) -> float:
        self._last = 100.0
        return self._last


class _UnitOutcome(Enum):
    SUCCEEDED = auto()
    TOLERATED = auto()
    FAILED = auto()
    CANCELLED = auto()


class PhasePipeline:
    """Executes phases over dependency-ordered units with a failure policy.

    Parameters
    ----------
    phases : Sequence[Phase]
        Phases in execution order
    guard : ActiveRunGuard | None
        Shared guard serializing runs of a deployment
    on_progress : Callable[[PipelineProgress], None] | None
        Called synchronously with every progress update; keep it cheap
    on_event : Callable[[Event], None] | None
        Observer for phase and unit events

    Examples
    --------
    Example usage::

        pipeline = PhasePipeline(
            [
                Phase("clone", clone_unit, is_complete=checkout_exists),
                Phase("build", build_unit, weight=3.0),
                Phase("containerize", build_image, continue_on_error=True),
            ],
            guard=guard,
            on_progress=lambda p: ui.send(p.percent, p.message),
        )
        result = await pipeline.execute(stack.select_units(["core"]))
    """

    def __init__(
        self,
        phases: Sequence[Phase],
        *,
        guard: ActiveRunGuard | None = None,
        on_progress: Callable[[PipelineProgress], None] | None = None,
        on_event: Callable[[Event], None] | None = None,
    ) -> None:
        names = [phase.name for phase in phases]
        if len(set(names)) != len(names):
            raise ValidationError("phases", "phase names must be unique", names)
        self.phases = list(phases)
        self._guard = guard or ActiveRunGuard()
        self._on_progress = on_progress
        self._on_event = on_event
        self._contexts: dict[str, RunContext] = {}

    @property
    def is_running(self) -> bool:
        return bool(self._contexts)

    async def cancel(
        self, reason: str = "cancelled by user", deployment_id: str | None = None
    ) -> bool:
        """Request cooperative cancellation of active runs.

        With ``deployment_id`` only that deployment's run is cancelled;
        otherwise every run of this pipeline is.

        Returns
        -------
        bool
            False if no matching run is active
        """
        if deployment_id is None:
            targets = list(self._contexts.values())
        elif deployment_id in self._contexts:
            targets = [self._contexts[deployment_id]]
        else:
            targets = []
        for context in targets:
            await context.cancel(reason)
        return bool(targets)

    async def execute_stack(
        self,
        stack: StackDefinition,
        *,
        components: Iterable[str] | None = None,
        context: RunContext | None = None,
        options: PipelineOptions | None = None,
    ) -> PipelineResult:
        """Run the units selected by ``components`` in the stack's preferred order."""
        units = stack.select_units(components)
        return await self.execute(
            units,
            context=context,
            options=options,
            preference_order=stack.preference_order(),
        )

    async def execute(
        self,
        units: Sequence[Unit],
        *,
        context: RunContext | None = None,
        options: PipelineOptions | None = None,
        preference_order: Sequence[str] | None = None,
    ) -> PipelineResult:
        """Execute every phase over ``units``.

        Dependencies on units outside ``units`` are ignored.

        Raises
        ------
        DeploymentBusyError
            If another run is active for the same deployment
        """
        context = context or RunContext()
        options = options or PipelineOptions()

        async with self._guard.acquire(context.deployment_id, "pipeline"):
            token = set_correlation_id(context.run_id)
            self._contexts[context.deployment_id] = context
            try:
                return await self._run(units, context, options, preference_order)
            finally:
                del self._contexts[context.deployment_id]
                reset_correlation_id(token)

    def _emit(self, event: Event) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _progress(
        self, run: PipelineRun, percent: float, message: str, unit_id: str | None = None
    ) -> None:
        run.progress = percent
        if self._on_progress is not None:
            self._on_progress(
                PipelineProgress(
                    run_id=run.run_id,
                    phase=run.phase,
                    percent=percent,
                    message=message,
                    unit_id=unit_id,
                )
            )

    async def _run(
        self,
        units: Sequence[Unit],
        context: RunContext,
        options: PipelineOptions,
        preference_order: Sequence[str] | None,
    ) -> PipelineResult:
        run = PipelineRun(run_id=context.run_id, deployment_id=context.deployment_id)
        logger.info(
            "Starting pipeline run {run_id} for '{deployment}' with {count} unit(s)",
            run_id=run.run_id,
            deployment=run.deployment_id,
            count=len(units),
        )

        try:
            graph = DependencyGraph(
                {u.id: sorted(u.depends_on) for u in units}, [u.id for u in units]
            )
            by_id = {unit.id: unit for unit in units}
            ordered = [by_id[unit_id] for unit_id in graph.resolve_order(preference_order)]
        except CycleDetectedError as exc:
            run.record_error(RunStatus.INITIALIZING.value, exc.unit_id, str(exc), fatal=True)
            return self._finish(run, RunStatus.FAILED, f"Dependency resolution failed: {exc}")

        active = [phase for phase in self.phases if phase.name not in options.skip_phases]
        tracker = ProgressTracker(
            {phase.name: phase.weight for phase in active},
            {phase.name: len(phase.units_for(ordered)) for phase in active},
        )
        run.status = RunStatus.RUNNING

        try:
            for phase in self.phases:
                if phase.name in options.skip_phases:
                    logger.info("Skipping phase '{phase}' by request", phase=phase.name)
                    continue
                if context.cancelled:
                    return self._cancelled(run, context)

                run.phase = phase.name
                phase_units = phase.units_for(ordered)
                self._emit(PhaseStarted(run.run_id, phase.name, len(phase_units)))
                self._progress(run, tracker.percent, f"Starting {phase.name}")

                if phase.gate is not None:
                    def on_gate_progress(percent: float, message: str | None) -> None:
                        # Gate progress is informational; the phase has not advanced
                        self._progress(run, tracker.percent, message or f"{run.phase}: gate")

                    context.bind_progress(on_gate_progress)
                    try:
                        await phase.gate(context)
                    except PipelineCancelledError:
                        return self._cancelled(run, context)
                    except Exception as exc:
                        run.record_error(phase.name, None, str(exc), fatal=True)
                        logger.error(
                            "Gate of phase '{phase}' failed: {error}", phase=phase.name, error=exc
                        )
                        return self._finish(run, RunStatus.FAILED, f"{phase.name} failed: {exc}")
                    finally:
                        context.bind_progress(None)

                tolerated = 0
                for unit in phase_units:
                    if context.cancelled:
                        return self._cancelled(run, context)

                    outcome = await self._run_unit(phase, unit, context, run, tracker, options)
                    if outcome is _UnitOutcome.CANCELLED:
                        return self._cancelled(run, context)
                    if outcome is _UnitOutcome.FAILED:
                        error = run.fatal_errors[-1]
                        message = f"{phase.name} failed for {unit.id}: {error.message}"
                        return self._finish(run, RunStatus.FAILED, message)
                    if outcome is _UnitOutcome.TOLERATED:
                        tolerated += 1
                    percent = tracker.complete_item(phase.name)
                    self._progress(run, percent, f"{phase.name}: {unit.id}", unit.id)

                succeeded = len(run.succeeded.get(phase.name, []))
                self._emit(PhaseCompleted(run.run_id, phase.name, succeeded, tolerated))
                self._progress(run, tracker.complete_phase(phase.name), f"Completed {phase.name}")
        except asyncio.CancelledError:
            if not run.status.is_terminal:
                self._finish(run, RunStatus.CANCELLED, "Pipeline task was cancelled")
            raise

        self._progress(run, tracker.finish(), "Pipeline completed")
        total = sum(len(ids) for ids in run.succeeded.values())
        return self._finish(
            run,
            RunStatus.COMPLETE,
            f"Pipeline completed: {total} unit step(s) across {len(active)} phase(s)",
        )

    async def _run_unit(
        self,
        phase: Phase,
        unit: Unit,
        context: RunContext,
        run: PipelineRun,
        tracker: ProgressTracker,
        options: PipelineOptions,
    ) -> _UnitOutcome:
        if phase.is_complete is not None and not options.force:
            try:
                already_done = await phase.is_complete(unit)
            except Exception as exc:
                logger.warning(
                    "Pre-check of '{unit}' in '{phase}' failed, executing anyway: {error}",
                    unit=unit.id,
                    phase=phase.name,
                    error=exc,
                )
                already_done = False
            if already_done:
                run.record_success(phase.name, unit.id, skipped=True)
                self._emit(UnitSkipped(run.run_id, phase.name, unit.id))
                logger.info(
                    "'{unit}' already complete for '{phase}', skipping",
                    unit=unit.id,
                    phase=phase.name,
                )
                return _UnitOutcome.SUCCEEDED

        self._emit(UnitStarted(run.run_id, phase.name, unit.id))
        started = time.monotonic()

        def on_sub_progress(percent: float, message: str | None) -> None:
            self._progress(
                run,
                tracker.set_sub_progress(phase.name, percent),
                message or f"{phase.name}: {unit.id} ({percent:.0f}%)",
                unit.id,
            )

        context.bind_progress(on_sub_progress)
        try:
            if unit.timeout is not None:
                await asyncio.wait_for(phase.executor(unit, context), timeout=unit.timeout)
            else:
                await phase.executor(unit, context)
        except PipelineCancelledError:
            return _UnitOutcome.CANCELLED
        except Exception as exc:
            if context.cancelled:
                return _UnitOutcome.CANCELLED
            if isinstance(exc, TimeoutError):
                message = f"timed out after {unit.timeout:g}s"
            else:
                message = str(exc) or type(exc).__name__
            tolerated = phase.tolerates(unit)
            run.record_error(phase.name, unit.id, message, fatal=not tolerated)
            self._emit(UnitFailed(run.run_id, phase.name, unit.id, message, tolerated))
            if tolerated:
                logger.warning(
                    "'{unit}' failed in '{phase}', continuing: {error}",
                    unit=unit.id,
                    phase=phase.name,
                    error=message,
                )
                return _UnitOutcome.TOLERATED
            logger.error(
                "'{unit}' failed in '{phase}': {error}",
                unit=unit.id,
                phase=phase.name,
                error=message,
            )
            return _UnitOutcome.FAILED
        finally:
            context.bind_progress(None)

        run.record_success(phase.name, unit.id)
        duration_ms = (time.monotonic() - started) * 1000
        self._emit(UnitCompleted(run.run_id, phase.name, unit.id, duration_ms))
        return _UnitOutcome.SUCCEEDED

    def _cancelled(self, run: PipelineRun, context: RunContext) -> PipelineResult:
        message = f"Pipeline cancelled: {context.cancel_reason}"
        return self._finish(run, RunStatus.CANCELLED, message)

    def _finish(self, run: PipelineRun, status: RunStatus, message: str) -> PipelineResult:
        run.finalize(status)
        duration_ms = (run.duration or 0.0) * 1000
        self._emit(PipelineFinished(run.run_id, status.value, message, duration_ms))
        if status is RunStatus.COMPLETE:
            logger.info("{message}", message=message)
        elif status is RunStatus.CANCELLED:
            logger.warning("{message}", message=message)
        else:
            logger.error("{message}", message=message)
        return PipelineResult(
            success=status is RunStatus.COMPLETE, status=status, message=message, run=run
        )
