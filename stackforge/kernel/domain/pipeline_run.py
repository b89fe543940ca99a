"""Domain model for phase pipeline run tracking."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum

from stackforge.kernel.exceptions import StackForgeError


class RunStatus(StrEnum):
    """Lifecycle status of a pipeline run."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.FAILED, RunStatus.CANCELLED)


class StandardPhase(StrEnum):
    """Phase names of the stock deployment pipeline."""

    CLONE = "clone"
    BUILD = "build"
    CONTAINERIZE = "containerize"
    VERIFY = "verify"


@dataclass(frozen=True, slots=True)
class RunError:
    """A failure recorded against a run.

    ``fatal`` errors decided the outcome of the run; non-fatal ones were
    tolerated by the optional or continue-on-error policy and are kept for
    diagnostics only.
    """

    phase: str
    unit: str | None
    message: str
    fatal: bool = True

    def describe(self) -> str:
        where = f"{self.phase}/{self.unit}" if self.unit else self.phase
        return f"[{where}] {self.message}"


@dataclass(slots=True)
class PipelineRun:
    """Mutable record of one pipeline execution.

    Only the coroutine executing the pipeline mutates it. ``finalize`` may be
    called exactly once.
    """

    run_id: str
    deployment_id: str
    phase: str = RunStatus.INITIALIZING.value
    status: RunStatus = RunStatus.INITIALIZING
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    succeeded: dict[str, list[str]] = field(default_factory=dict)
    skipped: dict[str, list[str]] = field(default_factory=dict)
    errors: list[RunError] = field(default_factory=list)
    progress: float = 0.0

    @property
    def duration(self) -> float | None:
        """Seconds between start and finalization."""
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    @property
    def fatal_errors(self) -> list[RunError]:
        return [error for error in self.errors if error.fatal]

    def record_success(self, phase: str, unit_id: str, *, skipped: bool = False) -> None:
        self.succeeded.setdefault(phase, []).append(unit_id)
        if skipped:
            self.skipped.setdefault(phase, []).append(unit_id)

    def record_error(self, phase: str, unit_id: str | None, message: str, *, fatal: bool) -> None:
        self.errors.append(RunError(phase=phase, unit=unit_id, message=message, fatal=fatal))

    def finalize(self, status: RunStatus) -> None:
        """Move the run into its terminal state.

        Raises
        ------
        StackForgeError
            If the run was already finalized or ``status`` is not terminal
        """
        if self.status.is_terminal:
            raise StackForgeError(f"Run '{self.run_id}' already finalized as {self.status}")
        if not status.is_terminal:
            raise StackForgeError(f"Cannot finalize run '{self.run_id}' as {status}")
        self.status = status
        self.phase = status.value
        self.ended_at = time.time()


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Outcome of ``PhasePipeline.execute`` handed back to the caller."""

    success: bool
    status: RunStatus
    message: str
    run: PipelineRun

    @property
    def errors(self) -> list[RunError]:
        return list(self.run.errors)
