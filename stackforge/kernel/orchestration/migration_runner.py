"""Ordered, idempotent application of change scripts.

Each script records its own completion as part of its effect, so a script
that fails partway is not marked applied and is retried verbatim on the
next run. Scripts must therefore be idempotent or transactional. The
runner stops at the first failure instead of applying later scripts out
of order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path

from stackforge.kernel.domain.migration import MigrationResult, MigrationScript
from stackforge.kernel.exceptions import MigrationFailedError, ResourceNotFoundError
from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.migration_store import MigrationStore

logger = get_logger(__name__)

MigrationProgressCallback = Callable[[str, int, int], None]


def load_migration_scripts(directory: str | Path) -> list[MigrationScript]:
    """Read every ``*.sql`` file of ``directory``, ordered by version prefix.

    Files without a numeric prefix get version 0.

    Raises
    ------
    ResourceNotFoundError
        If the directory does not exist
    """
    path = Path(directory)
    if not path.is_dir():
        raise ResourceNotFoundError("migrations directory", str(path))

    scripts = [
        MigrationScript(script_id=file.name, body=file.read_text(encoding="utf-8"), path=file)
        for file in path.iterdir()
        if file.is_file() and file.suffix == ".sql"
    ]
    return sorted(scripts, key=lambda script: script.sort_key)


class MigrationRunner:
    """Applies pending scripts against a :class:`MigrationStore`."""

    def __init__(self, store: MigrationStore) -> None:
        self.store = store

    async def pending(self, available: Iterable[MigrationScript]) -> list[MigrationScript]:
        """Scripts whose id has no applied record, ordered by version prefix."""
        applied = {record.script_id for record in await self.store.aapplied()}
        unique = {script.script_id: script for script in available}
        return sorted(
            (script for script_id, script in unique.items() if script_id not in applied),
            key=lambda script: script.sort_key,
        )

    async def run_pending(
        self,
        available: Iterable[MigrationScript],
        on_progress: MigrationProgressCallback | None = None,
    ) -> MigrationResult:
        """Apply every pending script in order, stopping at the first failure.

        Parameters
        ----------
        available : Iterable[MigrationScript]
            Scripts present on disk
        on_progress : MigrationProgressCallback | None
            Called with ``(script_id, index, total)`` before each script

        Returns
        -------
        MigrationResult
            Executed scripts; on failure the prefix that succeeded
        """
        ensure_ready = getattr(self.store, "aensure_ready", None)
        if ensure_ready is not None:
            try:
                await ensure_ready()
            except Exception as exc:
                logger.error("Migration store is not ready: {error}", error=exc)
                return MigrationResult(success=False, error=f"store not ready: {exc}")

        scripts = await self.pending(available)
        if not scripts:
            logger.info("No pending migrations")
            return MigrationResult(success=True)

        logger.info("Applying {count} pending migration(s)", count=len(scripts))
        executed: list[str] = []

        for index, script in enumerate(scripts, start=1):
            if on_progress is not None:
                on_progress(script.script_id, index, len(scripts))
            logger.info(
                "Running migration {index}/{total}: {script}",
                index=index,
                total=len(scripts),
                script=script.script_id,
            )
            try:
                await self.store.aapply(script)
            except Exception as exc:
                error = MigrationFailedError(script.script_id, str(exc))
                logger.error("{error}", error=error)
                return MigrationResult(
                    success=False,
                    executed=tuple(executed),
                    pending=tuple(s.script_id for s in scripts[index - 1 :]),
                    failed_script=script.script_id,
                    error=str(exc),
                )
            executed.append(script.script_id)

        logger.info("Applied {count} migration(s)", count=len(executed))
        return MigrationResult(success=True, executed=tuple(executed))
