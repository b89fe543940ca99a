"""Core exception hierarchy for stackforge.

All stackforge exceptions inherit from StackForgeError so callers can
catch every orchestration failure with a single handler. Errors are
grouped by the layer that raises them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stackforge.kernel.domain.resources import ResourceConflict

# ============================================================================
# Base Exception
# ============================================================================


class StackForgeError(Exception):
    """Base exception for all stackforge errors.

    Catch this to handle all stackforge-specific failures.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(StackForgeError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("stack", "unit 'api' is declared twice")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(StackForgeError):
    """Raised when data validation fails.

    Examples
    --------
    Example usage::

        raise ValidationError("max_attempts", "must be >= 1", value=0)
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


class ResourceNotFoundError(StackForgeError):
    """Raised when a required resource cannot be found."""

    def __init__(
        self, resource_type: str, resource_id: str, available: Sequence[str] | None = None
    ) -> None:
        msg = f"{resource_type.title()} '{resource_id}' not found"
        if available:
            msg += f". Available: {', '.join(list(available)[:5])}"
            if len(available) > 5:
                msg += f" ... and {len(available) - 5} more"
        super().__init__(msg)
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.available = list(available) if available else None


# ============================================================================
# Dependency Graph Errors
# ============================================================================


class DependencyGraphError(StackForgeError):
    """Base exception for dependency resolution errors."""

    __slots__ = ()


class CycleDetectedError(DependencyGraphError):
    """Raised when the unit dependency map contains a cycle.

    This is a configuration error: it is never retried and no partial
    order is produced.
    """

    def __init__(self, unit_id: str, path: Sequence[str] | None = None) -> None:
        """Initialize cycle error.

        Args
        ----
            unit_id: The unit at which the cycle was closed
            path: Units along the cycle, first and last being ``unit_id``
        """
        self.unit_id = unit_id
        self.path = list(path) if path else [unit_id]
        super().__init__(f"Cycle detected: {' -> '.join(self.path)}")


# ============================================================================
# Pipeline Errors
# ============================================================================


class UnitFailedError(StackForgeError):
    """Raised when a unit fails inside a pipeline phase."""

    def __init__(self, phase: str, unit_id: str, reason: str) -> None:
        super().__init__(f"Unit '{unit_id}' failed in phase '{phase}': {reason}")
        self.phase = phase
        self.unit_id = unit_id
        self.reason = reason


class PipelineCancelledError(StackForgeError):
    """Raised inside executors that observe a cancellation request."""

    pass


class DeploymentBusyError(StackForgeError):
    """Raised when another run is already active for the same deployment.

    Examples
    --------
    Example usage::

        raise DeploymentBusyError("local-stack", "update")
    """

    def __init__(self, deployment_id: str, active_kind: str) -> None:
        super().__init__(
            f"Deployment '{deployment_id}' is busy: a {active_kind} run is already active"
        )
        self.deployment_id = deployment_id
        self.active_kind = active_kind


# ============================================================================
# Resource Errors
# ============================================================================


class ResourceConflictError(StackForgeError):
    """Raised when required local resources stay in use after remediation."""

    def __init__(self, conflicts: Sequence[ResourceConflict]) -> None:
        ports = ", ".join(str(c.resource_id) for c in conflicts)
        super().__init__(f"Resources could not be automatically freed: {ports}")
        self.conflicts = list(conflicts)


# ============================================================================
# Health Errors
# ============================================================================


class HealthCheckError(StackForgeError):
    """Base exception for readiness failures."""

    pass


class HealthTimeoutError(HealthCheckError):
    """Raised when services did not become healthy in time.

    The services may still be starting; the deployment state is ambiguous.
    """

    def __init__(self, names: Sequence[str], timeout: float) -> None:
        super().__init__(
            f"Services not healthy after {timeout:g}s (may still be starting): "
            f"{', '.join(names)}"
        )
        self.names = list(names)
        self.timeout = timeout


class ResourceCrashedError(HealthCheckError):
    """Raised when a service was observed not running while waiting."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Service '{name}' is not running")
        self.name = name


# ============================================================================
# Update Errors
# ============================================================================


class UpdateError(StackForgeError):
    """Base exception for update flow failures."""

    pass


class InvalidTransitionError(UpdateError):
    """Raised when a state transition violates the update state machine."""


class BackupError(UpdateError):
    """Raised when the current artifact could not be backed up."""

    pass


class VerificationFailedError(UpdateError):
    """Raised when a freshly applied artifact does not come up healthy."""

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Verification failed: {reason}")
        self.reason = reason
        self.cause = cause


class RollbackFailedError(UpdateError):
    """Raised when restoring the previous artifact also fails.

    Terminal: manual intervention is required.
    """

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Rollback failed, manual intervention required: {reason}")
        self.reason = reason
        self.cause = cause


# ============================================================================
# Migration Errors
# ============================================================================


class MigrationFailedError(StackForgeError):
    """Raised when a change script fails to apply."""

    def __init__(self, script_id: str, reason: str) -> None:
        super().__init__(f"Migration '{script_id}' failed: {reason}")
        self.script_id = script_id
        self.reason = reason


# ============================================================================
# Retry & Process Errors
# ============================================================================


class RetryExhaustedError(StackForgeError):
    """Raised when every retry attempt of an operation failed."""

    def __init__(self, context: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"'{context}' failed after {attempts} attempt(s): {last_error}")
        self.context = context
        self.attempts = attempts
        self.last_error = last_error


class ProcessExecutionError(StackForgeError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int | None, stderr: str = "") -> None:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Command '{command}' exited with {exit_code}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


__all__ = [
    # Base
    "StackForgeError",
    # Configuration & Validation
    "ConfigurationError",
    "ValidationError",
    "ResourceNotFoundError",
    # Dependency graph
    "DependencyGraphError",
    "CycleDetectedError",
    # Pipeline
    "UnitFailedError",
    "PipelineCancelledError",
    "DeploymentBusyError",
    # Resources
    "ResourceConflictError",
    # Health
    "HealthCheckError",
    "HealthTimeoutError",
    "ResourceCrashedError",
    # Update
    "UpdateError",
    "BackupError",
    "InvalidTransitionError",
    "VerificationFailedError",
    "RollbackFailedError",
    # Migration
    "MigrationFailedError",
    # Retry & process
    "RetryExhaustedError",
    "ProcessExecutionError",
]
