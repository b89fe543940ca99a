"""Artifacts, backups and the update state machine."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum

from stackforge.kernel.domain.migration import MigrationResult


class UpdateState(StrEnum):
    """States of one backup/apply/verify/rollback cycle."""

    READY = "ready"
    CAPTURING_BACKUP = "capturing_backup"
    STOPPED = "stopped"
    FETCHING = "fetching"
    BUILDING = "building"
    STARTING = "starting"
    VERIFYING = "verifying"
    ROLLING_BACK = "rolling_back"
    RESTORING_BACKUP = "restoring_backup"
    RESTARTING = "restarting"
    READY_DEGRADED = "ready_degraded"
    FATAL = "fatal"


# Allowed transitions; anything else is a programming error
UPDATE_TRANSITIONS: dict[UpdateState, frozenset[UpdateState]] = {
    UpdateState.READY: frozenset({UpdateState.CAPTURING_BACKUP}),
    UpdateState.CAPTURING_BACKUP: frozenset({UpdateState.STOPPED, UpdateState.READY}),
    UpdateState.STOPPED: frozenset({UpdateState.FETCHING}),
    UpdateState.FETCHING: frozenset({UpdateState.BUILDING, UpdateState.ROLLING_BACK}),
    UpdateState.BUILDING: frozenset(
        {UpdateState.STARTING, UpdateState.READY, UpdateState.ROLLING_BACK}
    ),
    UpdateState.STARTING: frozenset({UpdateState.VERIFYING, UpdateState.ROLLING_BACK}),
    UpdateState.VERIFYING: frozenset({UpdateState.READY, UpdateState.ROLLING_BACK}),
    UpdateState.ROLLING_BACK: frozenset({UpdateState.RESTORING_BACKUP}),
    UpdateState.RESTORING_BACKUP: frozenset(
        {UpdateState.RESTARTING, UpdateState.READY_DEGRADED, UpdateState.FATAL}
    ),
    UpdateState.RESTARTING: frozenset({UpdateState.READY_DEGRADED, UpdateState.FATAL}),
    UpdateState.READY_DEGRADED: frozenset(),
    UpdateState.FATAL: frozenset(),
}


class UpdateOutcome(StrEnum):
    """User-visible outcome categories of an update."""

    UPDATED = "updated"
    # Nothing changed: the update never began
    NOT_STARTED = "not_started"
    # Changed, failed, reverted to the backup
    ROLLED_BACK = "rolled_back"
    # Changed, failed, revert failed; manual action required
    ROLLBACK_FAILED = "rollback_failed"
    # New artifact is live but the data layer is behind
    MIGRATION_FAILED = "migration_failed"


@dataclass(frozen=True, slots=True)
class BackupRecord:
    """A saved prior version of a deployable artifact."""

    artifact_id: str
    backup_tag: str
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class UpdateProgress:
    """Progress notification of an update cycle."""

    state: UpdateState
    message: str
    percent: float


@dataclass(frozen=True, slots=True)
class UpdateResult:
    """Structured result of ``BackupRollbackUpdateManager.apply_update``."""

    outcome: UpdateOutcome
    message: str
    final_state: UpdateState
    error: str | None = None
    backup: BackupRecord | None = None
    previous_artifact: str | None = None
    active_artifact: str | None = None
    migration: MigrationResult | None = None
    was_running: bool = False

    @property
    def success(self) -> bool:
        return self.outcome is UpdateOutcome.UPDATED

    @property
    def rolled_back(self) -> bool:
        return self.outcome is UpdateOutcome.ROLLED_BACK

    @property
    def deployed(self) -> bool:
        """True when the new artifact is the live one."""
        return self.outcome in (UpdateOutcome.UPDATED, UpdateOutcome.MIGRATION_FAILED)

    @property
    def requires_manual_intervention(self) -> bool:
        return self.outcome is UpdateOutcome.ROLLBACK_FAILED
