"""Mock implementations for testing purposes."""

from .mock_artifacts import InMemoryArtifactStore
from .mock_migration_store import InMemoryMigrationStore
from .mock_process import MockProcessDriver
from .mock_resources import MockPortReclaimer, MockResourceProbe
from .mock_services import MockServiceInventory, MockServiceLifecycle

__all__ = [
    "InMemoryArtifactStore",
    "InMemoryMigrationStore",
    "MockPortReclaimer",
    "MockProcessDriver",
    "MockResourceProbe",
    "MockServiceInventory",
    "MockServiceLifecycle",
]
