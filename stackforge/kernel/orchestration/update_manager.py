"""Backup-before-change updates with automatic rollback.

One update cycle walks the state machine::

    READY -> CAPTURING_BACKUP -> STOPPED -> FETCHING -> BUILDING
          -> STARTING -> VERIFYING -> READY
                                    \\-> ROLLING_BACK -> RESTORING_BACKUP -> RESTARTING
                                                      -> READY_DEGRADED | FATAL

The caller always gets a structured :class:`UpdateResult` that keeps
"nothing changed", "reverted" and "revert failed" apart. A failed rollback
restart is terminal: no older snapshot is tried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable

from stackforge.kernel.domain.artifacts import (
    UPDATE_TRANSITIONS,
    BackupRecord,
    UpdateOutcome,
    UpdateProgress,
    UpdateResult,
    UpdateState,
)
from stackforge.kernel.domain.health import HealthOutcome
from stackforge.kernel.domain.migration import MigrationResult, MigrationScript
from stackforge.kernel.exceptions import (
    BackupError,
    InvalidTransitionError,
    ResourceConflictError,
    RollbackFailedError,
    VerificationFailedError,
)
from stackforge.kernel.logging import get_logger, reset_correlation_id, set_correlation_id
from stackforge.kernel.orchestration.conflict_resolver import ConflictResolver
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.migration_runner import MigrationRunner
from stackforge.kernel.orchestration.models import UpdateConfig
from stackforge.kernel.orchestration.retry import RetryConfig, RetryPolicy
from stackforge.kernel.orchestration.run_context import ActiveRunGuard, RunContext
from stackforge.kernel.ports.artifact_store import ArtifactStore
from stackforge.kernel.ports.process import ProgressFragment
from stackforge.kernel.ports.services import ServiceLifecycle

logger = get_logger(__name__)

UpdateProgressCallback = Callable[[UpdateProgress], None]

_STATE_PERCENT: dict[UpdateState, float] = {
    UpdateState.READY: 0.0,
    UpdateState.CAPTURING_BACKUP: 5.0,
    UpdateState.STOPPED: 10.0,
    UpdateState.FETCHING: 20.0,
    UpdateState.BUILDING: 50.0,
    UpdateState.STARTING: 80.0,
    UpdateState.VERIFYING: 90.0,
    UpdateState.ROLLING_BACK: 91.0,
    UpdateState.RESTORING_BACKUP: 93.0,
    UpdateState.RESTARTING: 96.0,
    UpdateState.READY_DEGRADED: 100.0,
    UpdateState.FATAL: 100.0,
}


class BackupRollbackUpdateManager:
    """Applies a new artifact and reverts to the backup if it does not come up healthy.

    Parameters
    ----------
    store : ArtifactStore
        Active artifact, backups, fetch and build
    lifecycle : ServiceLifecycle
        Stop/start of the service stack
    monitor : HealthMonitor
        Readiness gate after (re)starting
    config : UpdateConfig | None
        Service names, required ports, backup retention
    conflict_resolver : ConflictResolver | None
        Frees ``config.required_ports`` before each start
    migration_runner : MigrationRunner | None
        Runs pending migrations after a verified update
    retry : RetryConfig | None
        Retry settings for fetch and build
    guard : ActiveRunGuard | None
        Shared guard serializing runs of a deployment
    """

    def __init__(
        self,
        store: ArtifactStore,
        lifecycle: ServiceLifecycle,
        monitor: HealthMonitor,
        config: UpdateConfig | None = None,
        *,
        conflict_resolver: ConflictResolver | None = None,
        migration_runner: MigrationRunner | None = None,
        retry: RetryConfig | None = None,
        guard: ActiveRunGuard | None = None,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.monitor = monitor
        self.config = config or UpdateConfig()
        self.conflict_resolver = conflict_resolver
        self.migration_runner = migration_runner
        self.retry = retry or RetryConfig()
        self._guard = guard or ActiveRunGuard()

    async def apply_update(
        self,
        source: str,
        *,
        migrations: Iterable[MigrationScript] | None = None,
        context: RunContext | None = None,
        on_progress: UpdateProgressCallback | None = None,
    ) -> UpdateResult:
        """Back up, apply and verify ``source``; roll back on verification failure.

        Parameters
        ----------
        source : str
            Where the new artifact comes from (repository ref, image reference)
        migrations : Iterable[MigrationScript] | None
            Scripts to apply after a verified update
        context : RunContext | None
            Run identity; a fresh one is created if omitted
        on_progress : UpdateProgressCallback | None
            Receives every state change

        Raises
        ------
        DeploymentBusyError
            If another run is active for the same deployment
        """
        context = context or RunContext()
        async with self._guard.acquire(context.deployment_id, "update"):
            token = set_correlation_id(context.run_id)
            try:
                cycle = _UpdateCycle(self, source, context, on_progress)
                return await cycle.run(list(migrations) if migrations is not None else None)
            finally:
                reset_correlation_id(token)


class _UpdateCycle:
    """State of one ``apply_update`` call."""

    def __init__(
        self,
        manager: BackupRollbackUpdateManager,
        source: str,
        context: RunContext,
        on_progress: UpdateProgressCallback | None,
    ) -> None:
        self.manager = manager
        self.source = source
        self.context = context
        self.on_progress = on_progress
        self.state = UpdateState.READY
        self.was_running = False
        self.previous: str | None = None
        self.backup: BackupRecord | None = None
        self.start_attempted = False
        self.last_percent = 0.0

    def transition(self, state: UpdateState, message: str, percent: float | None = None) -> None:
        if state not in UPDATE_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move update from {self.state} to {state}")
        logger.debug("Update state {old} -> {new}", old=self.state, new=state)
        self.state = state
        self.report(message, percent)

    def report(self, message: str, percent: float | None = None) -> None:
        # Rollback states and retried fetches never lower the reported percent
        value = _STATE_PERCENT[self.state] if percent is None else percent
        self.last_percent = max(self.last_percent, value)
        if self.on_progress is not None:
            self.on_progress(UpdateProgress(self.state, message, self.last_percent))

    def _on_fragment(self, fragment: ProgressFragment) -> None:
        # Map fetch/build sub-progress into the window of the current state
        if fragment.percent is None:
            return
        low = _STATE_PERCENT[self.state]
        high = 50.0 if self.state is UpdateState.FETCHING else 80.0
        self.report(fragment.message, low + (high - low) * fragment.percent / 100.0)

    def _result(
        self,
        outcome: UpdateOutcome,
        message: str,
        *,
        error: str | None = None,
        active: str | None = None,
        migration: MigrationResult | None = None,
    ) -> UpdateResult:
        return UpdateResult(
            outcome=outcome,
            message=message,
            final_state=self.state,
            error=error,
            backup=self.backup,
            previous_artifact=self.previous,
            active_artifact=active,
            migration=migration,
            was_running=self.was_running,
        )

    async def _active_artifact(self) -> str | None:
        try:
            return await self.manager.store.acurrent()
        except Exception as exc:
            logger.warning("Could not read active artifact: {error}", error=exc)
            return None

    async def run(self, migrations: list[MigrationScript] | None) -> UpdateResult:
        manager = self.manager
        logger.info("Starting update from {source}", source=self.source)
        self.report("Checking current deployment")

        try:
            self.was_running = await manager.lifecycle.ais_running()
            self.previous = await manager.store.acurrent()
        except Exception as exc:
            logger.error("Could not inspect current deployment: {error}", error=exc)
            return self._result(
                UpdateOutcome.NOT_STARTED, "Update did not start; nothing changed", error=str(exc)
            )

        self.transition(UpdateState.CAPTURING_BACKUP, "Backing up current version")
        if self.previous is None:
            logger.warning("No deployed artifact to back up; this is a first install")
        else:
            try:
                self.backup = await manager.store.abackup(self.previous)
            except Exception as exc:
                error = BackupError(f"Could not back up '{self.previous}': {exc}")
                logger.error("{error}", error=error)
                self.transition(UpdateState.READY, "Update aborted before any change")
                return self._result(
                    UpdateOutcome.NOT_STARTED,
                    "Update did not start; nothing changed",
                    error=str(error),
                    active=self.previous,
                )
            logger.info(
                "Backed up {artifact} as {tag}",
                artifact=self.backup.artifact_id,
                tag=self.backup.backup_tag,
            )

        if self.was_running:
            try:
                await manager.lifecycle.astop()
            except Exception as exc:
                logger.error("Could not stop services: {error}", error=exc)
                self.transition(UpdateState.READY, "Update aborted before any change")
                return self._result(
                    UpdateOutcome.NOT_STARTED,
                    "Update did not start; nothing changed",
                    error=f"Could not stop services: {exc}",
                    active=self.previous,
                )
            if manager.config.stop_grace > 0:
                await asyncio.sleep(manager.config.stop_grace)
        self.transition(UpdateState.STOPPED, "Services stopped" if self.was_running else "Ready")

        policy = RetryPolicy(manager.retry)
        self.transition(UpdateState.FETCHING, f"Fetching {self.source}")
        fetched = await policy.execute(
            lambda: manager.store.afetch(self.source, self._on_fragment),
            context=f"fetch {self.source}",
        )
        if not fetched.success:
            return await self._rollback(f"Fetch failed: {fetched.last_error}")

        self.transition(UpdateState.BUILDING, "Building new version")
        built = await policy.execute(
            lambda: manager.store.abuild(self.source, self._on_fragment),
            context=f"build {self.source}",
        )
        if not built.success:
            return await self._rollback(f"Build failed: {built.last_error}")
        new_artifact = built.value

        if self.was_running:
            self.transition(UpdateState.STARTING, "Starting new version")
            self.start_attempted = True
            try:
                await self._start_services()
            except Exception as exc:
                return await self._rollback(str(VerificationFailedError(str(exc), exc)))

            self.transition(UpdateState.VERIFYING, "Waiting for services to become healthy")
            report = await manager.monitor.wait_until_healthy(
                manager.config.service_names,
                on_progress=lambda pct, msg: self.report(msg, 90.0 + pct / 100.0 * 9.0),
            )
            if report.outcome is not HealthOutcome.READY:
                error = VerificationFailedError(report.reason or report.outcome.value)
                return await self._rollback(str(error))

        self.transition(UpdateState.READY, f"Updated to {new_artifact}", 99.0)

        migration = await self._migrate(migrations)
        await self._prune_backups()

        if migration is not None and not migration.success:
            logger.error(
                "Update deployed {artifact} but migrations failed: {message}",
                artifact=new_artifact,
                message=migration.message,
            )
            return self._result(
                UpdateOutcome.MIGRATION_FAILED,
                f"Updated to {new_artifact}, but the data layer is behind: {migration.message}",
                error=migration.error,
                active=new_artifact,
                migration=migration,
            )

        logger.info("Update to {artifact} complete", artifact=new_artifact)
        self.report(f"Updated to {new_artifact}", 100.0)
        return self._result(
            UpdateOutcome.UPDATED,
            f"Updated to {new_artifact}",
            active=new_artifact,
            migration=migration,
        )

    async def _start_services(self) -> None:
        manager = self.manager
        if manager.conflict_resolver is not None and manager.config.required_ports:
            report = await manager.conflict_resolver.ensure_resources_free(
                manager.config.required_ports
            )
            if not report.success:
                raise ResourceConflictError(report.conflicts)
        await manager.lifecycle.astart()

    async def _migrate(self, migrations: list[MigrationScript] | None) -> MigrationResult | None:
        runner = self.manager.migration_runner
        if runner is None or migrations is None:
            return None
        try:
            return await runner.run_pending(
                migrations,
                on_progress=lambda script, i, n: self.report(f"Migration {i}/{n}: {script}", 99.0),
            )
        except Exception as exc:
            logger.error("Migration run failed: {error}", error=exc)
            return MigrationResult(success=False, error=str(exc))

    async def _prune_backups(self) -> None:
        keep = self.manager.config.keep_backups
        try:
            removed = await self.manager.store.aprune_backups(keep)
        except Exception as exc:
            logger.warning("Could not prune old backups: {error}", error=exc)
            return
        if removed:
            logger.info(
                "Removed {count} old backup(s), keeping {keep}", count=len(removed), keep=keep
            )

    async def _rollback(self, error: str) -> UpdateResult:
        manager = self.manager
        logger.error("Update failed, rolling back: {error}", error=error)
        self.transition(UpdateState.ROLLING_BACK, "Update failed, rolling back")

        self.transition(UpdateState.RESTORING_BACKUP, "Restoring previous version")
        if self.start_attempted:
            try:
                await manager.lifecycle.astop()
            except Exception as exc:
                logger.warning("Could not stop failed version: {error}", error=exc)

        try:
            if self.backup is not None:
                await manager.store.arestore(self.backup)
                logger.info("Restored {artifact}", artifact=self.backup.artifact_id)
            else:
                logger.warning("No backup exists; nothing to restore")
        except Exception as exc:
            return self._fatal(error, RollbackFailedError(f"restore failed: {exc}", exc))

        if not self.was_running:
            self.transition(UpdateState.READY_DEGRADED, "Previous version restored")
            await self._discard_backup()
            return self._result(
                UpdateOutcome.ROLLED_BACK,
                "Update failed and was reverted to the previous version",
                error=error,
                active=await self._active_artifact(),
            )

        self.transition(UpdateState.RESTARTING, "Restarting previous version")
        try:
            await self._start_services()
            report = await manager.monitor.wait_until_healthy(manager.config.service_names)
        except Exception as exc:
            return self._fatal(error, RollbackFailedError(f"restart failed: {exc}", exc))
        if report.outcome is not HealthOutcome.READY:
            reason = report.reason or report.outcome.value
            return self._fatal(error, RollbackFailedError(f"previous version unhealthy: {reason}"))

        self.transition(UpdateState.READY_DEGRADED, "Previous version running")
        await self._discard_backup()
        logger.warning("Update reverted; previous version is running")
        return self._result(
            UpdateOutcome.ROLLED_BACK,
            "Update failed the health check and was reverted to the previous version",
            error=error,
            active=await self._active_artifact(),
        )

    async def _discard_backup(self) -> None:
        if self.backup is None:
            return
        try:
            await self.manager.store.adiscard(self.backup)
        except Exception as exc:
            logger.warning("Could not discard consumed backup: {error}", error=exc)

    def _fatal(self, original: str, failure: RollbackFailedError) -> UpdateResult:
        self.transition(UpdateState.FATAL, "Rollback failed; manual intervention required")
        logger.critical(
            "{failure} (original error: {original})", failure=failure, original=original
        )
        return self._result(
            UpdateOutcome.ROLLBACK_FAILED,
            "Update failed and the rollback also failed; manual intervention required",
            error=f"{original}; {failure}",
        )
