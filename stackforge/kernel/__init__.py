"""stackforge kernel: the public API of the orchestration core.

Applications and the CLI import from ``stackforge.kernel``; kernel and
adapter code may import from the submodules directly.
"""

# ============================================================================
# 1. Orchestration
# ============================================================================
from stackforge.kernel.orchestration import (
    ActiveRunGuard,
    BackupRollbackUpdateManager,
    ConflictResolver,
    HealthMonitor,
    MigrationRunner,
    Phase,
    PhasePipeline,
    PipelineOptions,
    RemediationStrategy,
    RetryConfig,
    RetryPolicy,
    RunContext,
    check_port_conflicts,
    conflict_gate,
    default_strategies,
    execute_with_retry,
    health_gate,
    load_migration_scripts,
)

# ============================================================================
# 2. Domain types
# ============================================================================
from stackforge.kernel.domain import (
    BackupRecord,
    Component,
    ConflictReport,
    HealthOutcome,
    HealthReport,
    HealthState,
    MigrationResult,
    MigrationScript,
    PipelineResult,
    ResourceConflict,
    ResourceRequirement,
    RunStatus,
    ServiceHealthSample,
    StackDefinition,
    Unit,
    UpdateOutcome,
    UpdateResult,
    UpdateState,
    resolve_order,
)

# ============================================================================
# 3. Port protocols
# ============================================================================
from stackforge.kernel.ports import (
    ArtifactStore,
    CommandDescriptor,
    MigrationStore,
    PortReclaimer,
    ProcessDriver,
    ProcessResult,
    ResourceProbe,
    ServiceInventory,
    ServiceLifecycle,
)

# ============================================================================
# 4. Exceptions
# ============================================================================
from stackforge.kernel.exceptions import (
    ConfigurationError,
    CycleDetectedError,
    DeploymentBusyError,
    ResourceConflictError,
    RetryExhaustedError,
    StackForgeError,
)

# ============================================================================
# 5. Logging
# ============================================================================
from stackforge.kernel.logging import configure_logging, get_logger

__all__ = [
    # Orchestration
    "ActiveRunGuard",
    "BackupRollbackUpdateManager",
    "ConflictResolver",
    "HealthMonitor",
    "MigrationRunner",
    "Phase",
    "PhasePipeline",
    "PipelineOptions",
    "RemediationStrategy",
    "RetryConfig",
    "RetryPolicy",
    "RunContext",
    "check_port_conflicts",
    "conflict_gate",
    "default_strategies",
    "execute_with_retry",
    "health_gate",
    "load_migration_scripts",
    # Domain
    "BackupRecord",
    "Component",
    "ConflictReport",
    "HealthOutcome",
    "HealthReport",
    "HealthState",
    "MigrationResult",
    "MigrationScript",
    "PipelineResult",
    "ResourceConflict",
    "ResourceRequirement",
    "RunStatus",
    "ServiceHealthSample",
    "StackDefinition",
    "Unit",
    "UpdateOutcome",
    "UpdateResult",
    "UpdateState",
    "resolve_order",
    # Ports
    "ArtifactStore",
    "CommandDescriptor",
    "MigrationStore",
    "PortReclaimer",
    "ProcessDriver",
    "ProcessResult",
    "ResourceProbe",
    "ServiceInventory",
    "ServiceLifecycle",
    # Exceptions
    "ConfigurationError",
    "CycleDetectedError",
    "DeploymentBusyError",
    "ResourceConflictError",
    "RetryExhaustedError",
    "StackForgeError",
    # Logging
    "configure_logging",
    "get_logger",
]
