"""Orchestration components: pipeline, retry, health, conflicts, updates, migrations."""

from stackforge.kernel.orchestration.conflict_resolver import (
    ConflictResolver,
    RemediationStrategy,
    check_port_conflicts,
    default_strategies,
)
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
from stackforge.kernel.orchestration.gates import conflict_gate, health_gate
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.migration_runner import (
    MigrationRunner,
    load_migration_scripts,
)
from stackforge.kernel.orchestration.models import (
    ConflictResolverConfig,
    HealthMonitorConfig,
    UpdateConfig,
)
from stackforge.kernel.orchestration.pipeline import (
    Phase,
    PhasePipeline,
    PipelineOptions,
    ProgressTracker,
)
from stackforge.kernel.orchestration.retry import (
    RetryAttempt,
    RetryConfig,
    RetryPolicy,
    RetryResult,
    execute_with_retry,
)
from stackforge.kernel.orchestration.run_context import ActiveRunGuard, RunContext
from stackforge.kernel.orchestration.update_manager import BackupRollbackUpdateManager

__all__ = [
    "ActiveRunGuard",
    "BackupRollbackUpdateManager",
    "ConflictResolver",
    "ConflictResolverConfig",
    "Event",
    "HealthMonitor",
    "HealthMonitorConfig",
    "MigrationRunner",
    "Phase",
    "PhaseCompleted",
    "PhasePipeline",
    "PhaseStarted",
    "PipelineFinished",
    "PipelineOptions",
    "PipelineProgress",
    "ProgressTracker",
    "RemediationStrategy",
    "RetryAttempt",
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "RunContext",
    "UnitCompleted",
    "UnitFailed",
    "UnitSkipped",
    "UnitStarted",
    "UpdateConfig",
    "check_port_conflicts",
    "conflict_gate",
    "default_strategies",
    "execute_with_retry",
    "health_gate",
    "load_migration_scripts",
]
