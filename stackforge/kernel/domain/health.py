"""Health samples and readiness outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class HealthState(StrEnum):
    """Health signal reported by the service inventory."""

    NONE = "none"  # no health check defined
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class Readiness(StrEnum):
    """Classification of one sample by the health monitor."""

    NOT_RUNNING = "not_running"
    HEALTHY = "healthy"
    PENDING = "pending"


class HealthOutcome(StrEnum):
    READY = "ready"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class ServiceHealthSample:
    """Point-in-time run/health snapshot of one service."""

    name: str
    running: bool
    health: HealthState = HealthState.NONE

    def classify(self) -> Readiness:
        """Classify the sample.

        A running service with no health check counts as healthy.
        """
        if not self.running:
            return Readiness.NOT_RUNNING
        if self.health in (HealthState.HEALTHY, HealthState.NONE):
            return Readiness.HEALTHY
        return Readiness.PENDING


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Result of ``HealthMonitor.wait_until_healthy``.

    Attributes
    ----------
    outcome : HealthOutcome
        READY, FAILED (a service stopped running) or TIMEOUT
    fast_path : bool
        True when every service was healthy on the very first poll
    classifications : dict[str, Readiness]
        Last known classification per requested service
    reason : str | None
        Human readable failure reason
    failed_service : str | None
        Service observed not running, for FAILED outcomes
    polls : int
        Number of inventory polls performed
    elapsed : float
        Seconds spent waiting
    """

    outcome: HealthOutcome
    fast_path: bool = False
    classifications: dict[str, Readiness] = field(default_factory=dict)
    reason: str | None = None
    failed_service: str | None = None
    polls: int = 0
    elapsed: float = 0.0

    @property
    def ready(self) -> bool:
        return self.outcome is HealthOutcome.READY

    @property
    def pending(self) -> list[str]:
        return [name for name, state in self.classifications.items() if state is Readiness.PENDING]
