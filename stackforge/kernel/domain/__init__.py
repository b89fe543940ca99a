"""Domain models of the orchestration core."""

from stackforge.kernel.domain.artifacts import (
    BackupRecord,
    UpdateOutcome,
    UpdateProgress,
    UpdateResult,
    UpdateState,
)
from stackforge.kernel.domain.dependency_graph import DependencyGraph, resolve_order
from stackforge.kernel.domain.health import (
    HealthOutcome,
    HealthReport,
    HealthState,
    Readiness,
    ServiceHealthSample,
)
from stackforge.kernel.domain.migration import (
    MigrationRecord,
    MigrationResult,
    MigrationScript,
)
from stackforge.kernel.domain.pipeline_run import (
    PipelineResult,
    PipelineRun,
    RunError,
    RunStatus,
    StandardPhase,
)
from stackforge.kernel.domain.resources import (
    ConflictReport,
    ResourceConflict,
    ResourceRequirement,
)
from stackforge.kernel.domain.unit import Component, StackDefinition, Unit

__all__ = [
    "BackupRecord",
    "Component",
    "ConflictReport",
    "DependencyGraph",
    "HealthOutcome",
    "HealthReport",
    "HealthState",
    "MigrationRecord",
    "MigrationResult",
    "MigrationScript",
    "PipelineResult",
    "PipelineRun",
    "Readiness",
    "ResourceConflict",
    "ResourceRequirement",
    "RunError",
    "RunStatus",
    "ServiceHealthSample",
    "StackDefinition",
    "StandardPhase",
    "Unit",
    "UpdateOutcome",
    "UpdateProgress",
    "UpdateResult",
    "UpdateState",
    "resolve_order",
]
