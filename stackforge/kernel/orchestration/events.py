"""Event data classes emitted by the pipeline and the update manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event."""
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


# Phase events
@dataclass(slots=True)
class PhaseStarted(Event):
    """A phase began processing its units."""

    run_id: str
    phase: str
    unit_count: int

    def log_message(self) -> str:
        return f"Phase '{self.phase}' started with {self.unit_count} unit(s)"


@dataclass(slots=True)
class PhaseCompleted(Event):
    """Every unit of a phase succeeded or was tolerated."""

    run_id: str
    phase: str
    succeeded: int
    tolerated_failures: int = 0

    def log_message(self) -> str:
        tolerated = (
            f", {self.tolerated_failures} tolerated failure(s)" if self.tolerated_failures else ""
        )
        return f"Phase '{self.phase}' completed: {self.succeeded} succeeded{tolerated}"


# Unit events
@dataclass(slots=True)
class UnitStarted(Event):
    run_id: str
    phase: str
    unit_id: str

    def log_message(self) -> str:
        return f"Unit '{self.unit_id}' started in phase '{self.phase}'"


@dataclass(slots=True)
class UnitCompleted(Event):
    run_id: str
    phase: str
    unit_id: str
    duration_ms: float

    def log_message(self) -> str:
        return f"Unit '{self.unit_id}' completed '{self.phase}' in {self.duration_ms / 1000:.2f}s"


@dataclass(slots=True)
class UnitSkipped(Event):
    """The idempotent pre-check found the unit's artifact already in place."""

    run_id: str
    phase: str
    unit_id: str

    def log_message(self) -> str:
        return f"Unit '{self.unit_id}' already complete for '{self.phase}', skipped"


@dataclass(slots=True)
class UnitFailed(Event):
    run_id: str
    phase: str
    unit_id: str
    error: str
    tolerated: bool

    def log_message(self) -> str:
        policy = "tolerated" if self.tolerated else "fatal"
        return f"Unit '{self.unit_id}' failed in '{self.phase}' ({policy}): {self.error}"


# Run events
@dataclass(slots=True)
class PipelineProgress(Event):
    """Aggregated, monotonically non-decreasing progress of one run."""

    run_id: str
    phase: str
    percent: float
    message: str
    unit_id: str | None = None

    def log_message(self) -> str:
        return f"[{self.percent:5.1f}%] {self.phase}: {self.message}"


@dataclass(slots=True)
class PipelineFinished(Event):
    run_id: str
    status: str
    message: str
    duration_ms: float

    def log_message(self) -> str:
        return f"Pipeline {self.status} in {self.duration_ms / 1000:.2f}s: {self.message}"
