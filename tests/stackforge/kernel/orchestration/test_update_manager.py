"""Tests for stackforge.kernel.orchestration.update_manager module."""

import pytest

from stackforge.kernel.domain.artifacts import UpdateOutcome, UpdateProgress, UpdateState
from stackforge.kernel.domain.health import HealthState, ServiceHealthSample
from stackforge.kernel.domain.migration import MigrationScript
from stackforge.kernel.exceptions import DeploymentBusyError
from stackforge.kernel.orchestration.conflict_resolver import ConflictResolver
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.migration_runner import MigrationRunner
from stackforge.kernel.orchestration.models import (
    ConflictResolverConfig,
    HealthMonitorConfig,
    UpdateConfig,
)
from stackforge.kernel.orchestration.retry import RetryConfig
from stackforge.kernel.orchestration.run_context import ActiveRunGuard, RunContext
from stackforge.kernel.orchestration.update_manager import BackupRollbackUpdateManager
from stackforge.stdlib.adapters.mock import (
    InMemoryArtifactStore,
    InMemoryMigrationStore,
    MockResourceProbe,
    MockServiceInventory,
    MockServiceLifecycle,
)

UPDATE = UpdateConfig(stop_grace=0, service_names=("api",))
HEALTH = HealthMonitorConfig(timeout=0.05, poll_interval=0.01)
RETRY = RetryConfig(max_attempts=2, initial_delay=0, jitter_factor=0)


def healthy_when(store: InMemoryArtifactStore, *good: str) -> MockServiceInventory:
    """Inventory whose "api" service runs only while a good artifact is active."""

    def sampler(names, poll):
        running = store.current in good
        health = HealthState.HEALTHY if running else HealthState.NONE
        return [ServiceHealthSample(name, running, health) for name in names]

    return MockServiceInventory(sampler=sampler)


def make_manager(
    store: InMemoryArtifactStore,
    lifecycle: MockServiceLifecycle,
    inventory: MockServiceInventory,
    config: UpdateConfig = UPDATE,
    **kwargs,
) -> BackupRollbackUpdateManager:
    return BackupRollbackUpdateManager(
        store, lifecycle, HealthMonitor(inventory, HEALTH), config, retry=RETRY, **kwargs
    )


class TestSuccessfulUpdate:
    """Tests for updates that verify healthy."""

    @pytest.mark.asyncio
    async def test_running_stack_is_updated(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v1", "v2"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.UPDATED
        assert result.success is True
        assert result.deployed is True
        assert result.final_state is UpdateState.READY
        assert result.previous_artifact == "v1"
        assert result.active_artifact == "v2"
        assert result.backup is not None and result.backup.artifact_id == "v1"
        assert store.current == "v2"
        assert lifecycle.calls == ["stop", "start"]
        assert store.calls == ["backup", "fetch", "build"]

    @pytest.mark.asyncio
    async def test_progress_walks_the_state_machine(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v2"))
        updates: list[UpdateProgress] = []

        await manager.apply_update("v2", on_progress=updates.append)

        states = list(dict.fromkeys(update.state for update in updates))
        assert states == [
            UpdateState.READY,
            UpdateState.CAPTURING_BACKUP,
            UpdateState.STOPPED,
            UpdateState.FETCHING,
            UpdateState.BUILDING,
            UpdateState.STARTING,
            UpdateState.VERIFYING,
        ]
        assert updates[-1].state is UpdateState.READY
        percents = [update.percent for update in updates]
        assert percents == sorted(percents)
        assert percents[-1] == 100.0

    @pytest.mark.asyncio
    async def test_progress_never_drops_during_rollback(self) -> None:
        store = InMemoryArtifactStore("v1")
        new_version_polls = 0

        def sampler(names, poll):
            nonlocal new_version_polls
            if store.current != "v2":
                return [ServiceHealthSample(name, True, HealthState.HEALTHY) for name in names]
            new_version_polls += 1
            return [
                ServiceHealthSample("api", True, HealthState.HEALTHY),
                ServiceHealthSample("web", new_version_polls < 2, HealthState.STARTING),
            ]

        config = UpdateConfig(stop_grace=0, service_names=("api", "web"))
        manager = make_manager(
            store, MockServiceLifecycle(running=True), MockServiceInventory(sampler=sampler), config
        )
        updates: list[UpdateProgress] = []

        result = await manager.apply_update("v2", on_progress=updates.append)

        assert result.outcome is UpdateOutcome.ROLLED_BACK
        states = [update.state for update in updates]
        assert UpdateState.ROLLING_BACK in states
        verifying = [u.percent for u in updates if u.state is UpdateState.VERIFYING]
        assert max(verifying) > 91.0
        percents = [update.percent for update in updates]
        assert percents == sorted(percents)

    @pytest.mark.asyncio
    async def test_progress_never_drops_when_backup_fails(self) -> None:
        store = InMemoryArtifactStore("v1", backup_error=OSError("disk full"))
        manager = make_manager(store, MockServiceLifecycle(running=True), healthy_when(store, "v1"))
        updates: list[UpdateProgress] = []

        await manager.apply_update("v2", on_progress=updates.append)

        assert updates[-1].state is UpdateState.READY
        percents = [update.percent for update in updates]
        assert percents == sorted(percents)

    @pytest.mark.asyncio
    async def test_stopped_stack_is_not_started(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=False)
        inventory = healthy_when(store, "v2")
        manager = make_manager(store, lifecycle, inventory)

        result = await manager.apply_update("v2")

        assert result.success is True
        assert lifecycle.calls == []
        assert inventory.polls == 0

    @pytest.mark.asyncio
    async def test_first_install_without_backup(self) -> None:
        store = InMemoryArtifactStore(current=None)
        manager = make_manager(store, MockServiceLifecycle(), healthy_when(store, "v1"))

        result = await manager.apply_update("v1")

        assert result.success is True
        assert result.backup is None
        assert result.previous_artifact is None
        assert store.calls == ["fetch", "build"]

    @pytest.mark.asyncio
    async def test_transient_fetch_failure_is_retried(self) -> None:
        store = InMemoryArtifactStore("v1", fetch_failures=1)
        manager = make_manager(store, MockServiceLifecycle(running=True), healthy_when(store, "v2"))

        result = await manager.apply_update("v2")

        assert result.success is True
        assert store.calls.count("fetch") == 2

    @pytest.mark.asyncio
    async def test_old_backups_are_pruned(self) -> None:
        store = InMemoryArtifactStore("v1")
        config = UpdateConfig(keep_backups=1, stop_grace=0, service_names=("api",))
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v2", "v3"), config)

        await manager.apply_update("v2")
        await manager.apply_update("v3")

        assert [backup.backup_tag for backup in store.backups] == ["backup-2"]
        assert store.backups[0].artifact_id == "v2"


class TestRollback:
    """Tests for failed updates and their rollback."""

    @pytest.mark.asyncio
    async def test_unhealthy_update_is_reverted(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.ROLLED_BACK
        assert result.rolled_back is True
        assert result.success is False
        assert result.deployed is False
        assert result.final_state is UpdateState.READY_DEGRADED
        assert result.active_artifact == "v1"
        assert "Verification failed" in (result.error or "")
        assert store.current == "v1"
        assert lifecycle.calls == ["stop", "start", "stop", "start"]
        assert lifecycle.running is True
        assert store.backups == []

    @pytest.mark.asyncio
    async def test_build_failure_restarts_previous_version(self) -> None:
        store = InMemoryArtifactStore("v1", build_failures=5)
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.rolled_back is True
        assert "Build failed" in (result.error or "")
        assert store.calls.count("build") == RETRY.max_attempts
        assert "restore" in store.calls
        assert lifecycle.calls == ["stop", "start"]

    @pytest.mark.asyncio
    async def test_fetch_failure_on_stopped_stack(self) -> None:
        store = InMemoryArtifactStore("v1", fetch_failures=5)
        lifecycle = MockServiceLifecycle(running=False)
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.rolled_back is True
        assert result.final_state is UpdateState.READY_DEGRADED
        assert "Fetch failed" in (result.error or "")
        assert "build" not in store.calls
        assert lifecycle.calls == []

    @pytest.mark.asyncio
    async def test_failed_restart_requires_manual_intervention(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.ROLLBACK_FAILED
        assert result.requires_manual_intervention is True
        assert result.final_state is UpdateState.FATAL
        assert "Verification failed" in (result.error or "")
        assert "Rollback failed" in (result.error or "")
        assert lifecycle.calls.count("start") == 2

    @pytest.mark.asyncio
    async def test_restart_error_is_fatal(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(
            running=True, start_errors=[None, RuntimeError("compose up failed")]
        )
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.ROLLBACK_FAILED
        assert "compose up failed" in (result.error or "")

    @pytest.mark.asyncio
    async def test_restore_error_is_fatal(self) -> None:
        store = InMemoryArtifactStore("v1", build_failures=5, restore_error=OSError("tag gone"))
        manager = make_manager(store, MockServiceLifecycle(running=True), healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.ROLLBACK_FAILED
        assert "tag gone" in (result.error or "")

    @pytest.mark.asyncio
    async def test_port_conflict_on_start_rolls_back(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True)
        probe = MockResourceProbe(in_use=[8080], owners={8080: "nginx (pid 7)"})
        resolver = ConflictResolver(
            probe, (), ConflictResolverConfig(max_attempts=1, settle_time=0)
        )
        config = UpdateConfig(stop_grace=0, service_names=("api",), required_ports=(8080,))
        manager = make_manager(
            store, lifecycle, healthy_when(store, "v1"), config, conflict_resolver=resolver
        )

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.ROLLBACK_FAILED
        assert "could not be automatically freed" in (result.error or "")
        assert "start" not in lifecycle.calls
        assert store.current == "v1"


class TestUpdateNotStarted:
    """Tests for updates that abort before changing anything."""

    @pytest.mark.asyncio
    async def test_backup_failure_changes_nothing(self) -> None:
        store = InMemoryArtifactStore("v1", backup_error=OSError("disk full"))
        lifecycle = MockServiceLifecycle(running=True)
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.NOT_STARTED
        assert result.final_state is UpdateState.READY
        assert result.active_artifact == "v1"
        assert "disk full" in (result.error or "")
        assert lifecycle.calls == []
        assert store.calls == ["backup"]

    @pytest.mark.asyncio
    async def test_stop_failure_changes_nothing(self) -> None:
        store = InMemoryArtifactStore("v1")
        lifecycle = MockServiceLifecycle(running=True, stop_error=RuntimeError("timeout"))
        manager = make_manager(store, lifecycle, healthy_when(store, "v1"))

        result = await manager.apply_update("v2")

        assert result.outcome is UpdateOutcome.NOT_STARTED
        assert "fetch" not in store.calls
        assert store.current == "v1"

    @pytest.mark.asyncio
    async def test_busy_deployment_is_rejected(self) -> None:
        guard = ActiveRunGuard()
        store = InMemoryArtifactStore("v1")
        manager = make_manager(
            store, MockServiceLifecycle(), healthy_when(store, "v2"), guard=guard
        )

        async with guard.acquire("prod", "pipeline"):
            with pytest.raises(DeploymentBusyError):
                await manager.apply_update("v2", context=RunContext(deployment_id="prod"))

        assert store.calls == []


class TestMigrations:
    """Tests for migrations run after a verified update."""

    @pytest.mark.asyncio
    async def test_migrations_applied_after_update(self) -> None:
        store = InMemoryArtifactStore("v1")
        migrations = InMemoryMigrationStore(applied=["1_a.sql"])
        manager = make_manager(
            store,
            MockServiceLifecycle(running=True),
            healthy_when(store, "v2"),
            migration_runner=MigrationRunner(migrations),
        )

        result = await manager.apply_update(
            "v2", migrations=[MigrationScript("1_a.sql"), MigrationScript("2_b.sql")]
        )

        assert result.success is True
        assert result.migration is not None
        assert result.migration.executed == ("2_b.sql",)

    @pytest.mark.asyncio
    async def test_migration_failure_keeps_new_version(self) -> None:
        store = InMemoryArtifactStore("v1")
        migrations = InMemoryMigrationStore(fail_on=["2_b.sql"])
        manager = make_manager(
            store,
            MockServiceLifecycle(running=True),
            healthy_when(store, "v2"),
            migration_runner=MigrationRunner(migrations),
        )

        result = await manager.apply_update(
            "v2", migrations=[MigrationScript("1_a.sql"), MigrationScript("2_b.sql")]
        )

        assert result.outcome is UpdateOutcome.MIGRATION_FAILED
        assert result.success is False
        assert result.deployed is True
        assert result.active_artifact == "v2"
        assert store.current == "v2"
        assert result.migration is not None
        assert result.migration.failed_script == "2_b.sql"
        assert migrations.executed == ["1_a.sql"]
