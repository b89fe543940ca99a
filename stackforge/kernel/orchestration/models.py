"""Configuration models of the orchestration components."""

from __future__ import annotations

from dataclasses import dataclass

from stackforge.kernel.exceptions import ValidationError

DEFAULT_OWNED_PREFIX = "stackforge-"


@dataclass(frozen=True, slots=True)
class HealthMonitorConfig:
    """Readiness polling defaults (seconds)."""

    timeout: float = 120.0
    poll_interval: float = 2.0

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValidationError("health.timeout", "must be positive", self.timeout)
        if self.poll_interval <= 0:
            raise ValidationError("health.poll_interval", "must be positive", self.poll_interval)


@dataclass(frozen=True, slots=True)
class ConflictResolverConfig:
    """Port conflict remediation defaults.

    Attributes
    ----------
    max_attempts : int
        Remediation rounds before giving up
    settle_time : float
        Seconds to wait after cleanup before re-probing
    slow_release_settle_time : float
        Settle time on platforms where port release lags
    slow_release_platforms : tuple[str, ...]
        ``sys.platform`` values that use the longer settle time
    owned_prefix : str
        Name prefix of holders (containers) owned by this application;
        passed to ``ServiceLifecycle.aremove_owned``
    """

    max_attempts: int = 3
    settle_time: float = 2.0
    slow_release_settle_time: float = 5.0
    slow_release_platforms: tuple[str, ...] = ("win32",)
    owned_prefix: str = DEFAULT_OWNED_PREFIX

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError("conflicts.max_attempts", "must be >= 1", self.max_attempts)
        if self.settle_time < 0 or self.slow_release_settle_time < 0:
            raise ValidationError("conflicts.settle_time", "must be non-negative")

    def settle_time_for(self, platform: str) -> float:
        """Return the settle time to use on ``platform``."""
        if platform in self.slow_release_platforms:
            return self.slow_release_settle_time
        return self.settle_time


@dataclass(frozen=True, slots=True)
class UpdateConfig:
    """Backup/rollback update defaults.

    Attributes
    ----------
    keep_backups : int
        Number of backups retained after a successful update
    stop_grace : float
        Seconds to wait after stopping services before touching artifacts
    service_names : tuple[str, ...]
        Services whose health gates a restart
    required_ports : tuple[int, ...]
        Ports that must be free before services start
    """

    keep_backups: int = 3
    stop_grace: float = 2.0
    service_names: tuple[str, ...] = ()
    required_ports: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if self.keep_backups < 1:
            raise ValidationError("update.keep_backups", "must be >= 1", self.keep_backups)
        if self.stop_grace < 0:
            raise ValidationError("update.stop_grace", "must be non-negative", self.stop_grace)
        for port in self.required_ports:
            if not 0 < port < 65536:
                raise ValidationError("update.required_ports", "must be valid TCP ports", port)
