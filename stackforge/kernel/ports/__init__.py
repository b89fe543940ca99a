"""Port interfaces of the orchestration core."""

from stackforge.kernel.ports.artifact_store import ArtifactStore
from stackforge.kernel.ports.migration_store import MigrationStore
from stackforge.kernel.ports.process import (
    CommandDescriptor,
    ProcessDriver,
    ProcessResult,
    ProgressCallback,
    ProgressFragment,
)
from stackforge.kernel.ports.resource_probe import PortReclaimer, ResourceProbe
from stackforge.kernel.ports.services import ServiceInventory, ServiceLifecycle

__all__ = [
    "ArtifactStore",
    "CommandDescriptor",
    "MigrationStore",
    "PortReclaimer",
    "ProcessDriver",
    "ProcessResult",
    "ProgressCallback",
    "ProgressFragment",
    "ResourceProbe",
    "ServiceInventory",
    "ServiceLifecycle",
]
