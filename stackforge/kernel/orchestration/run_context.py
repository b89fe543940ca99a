"""Per-run context and the active-run guard.

A :class:`RunContext` is created by the caller of a pipeline or update and
passed through every suspension point. It carries the cooperative
cancellation flag and the terminators of in-flight external operations, so
independent runs never share ambient state.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from stackforge.kernel.exceptions import DeploymentBusyError, PipelineCancelledError
from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.process import ProgressFragment

logger = get_logger(__name__)

Terminator = Callable[[], Awaitable[Any]]
SubProgressSink = Callable[[float, str | None], None]


@dataclass(slots=True)
class RunContext:
    """State shared by everything running on behalf of one run.

    Attributes
    ----------
    deployment_id : str
        Deployment the run operates on; used by the active-run guard
    run_id : str
        Unique id, also used as logging correlation id
    cancel_reason : str | None
        Set once cancellation has been requested
    """

    deployment_id: str = "default"
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    cancel_reason: str | None = None
    _terminators: list[Terminator] = field(default_factory=list, repr=False)
    _progress_sink: SubProgressSink | None = field(default=None, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_reason is not None

    def raise_if_cancelled(self) -> None:
        if self.cancel_reason is not None:
            raise PipelineCancelledError(self.cancel_reason)

    def add_terminator(self, terminator: Terminator) -> Callable[[], None]:
        """Register a coroutine that asks an in-flight operation to stop.

        Returns a callable that unregisters it again.
        """
        self._terminators.append(terminator)

        def remove() -> None:
            if terminator in self._terminators:
                self._terminators.remove(terminator)

        return remove

    async def cancel(self, reason: str = "cancelled by user") -> None:
        """Request cooperative cancellation.

        The flag is observed between units; in-flight operations are asked
        to terminate but are not killed.
        """
        if self.cancel_reason is not None:
            return
        self.cancel_reason = reason
        logger.info(
            "Cancellation requested for run {run_id}: {reason}", run_id=self.run_id, reason=reason
        )
        for terminator in list(self._terminators):
            try:
                await terminator()
            except Exception as exc:
                # Best effort: the run still finalizes as cancelled
                logger.warning("Terminator failed during cancellation: {error}", error=exc)

    def report_progress(self, percent: float, message: str | None = None) -> None:
        """Report the 0-100 sub-progress of the unit currently executing."""
        if self._progress_sink is not None:
            self._progress_sink(max(0.0, min(100.0, percent)), message)

    def on_fragment(self, fragment: ProgressFragment) -> None:
        """Forward a process driver progress fragment as unit sub-progress."""
        if fragment.percent is not None:
            self.report_progress(fragment.percent, fragment.message)

    def bind_progress(self, sink: SubProgressSink | None) -> None:
        self._progress_sink = sink


class ActiveRunGuard:
    """Allows at most one active run per deployment.

    Share one guard between the pipeline and the update manager of a
    deployment; a second run fails fast with ``DeploymentBusyError``.

    Examples
    --------
    Example usage::

        guard = ActiveRunGuard()
        async with guard.acquire("local-stack", "pipeline"):
            ...
    """

    def __init__(self) -> None:
        self._active: dict[str, str] = {}

    def active_kind(self, deployment_id: str) -> str | None:
        return self._active.get(deployment_id)

    def is_busy(self, deployment_id: str) -> bool:
        return deployment_id in self._active

    @asynccontextmanager
    async def acquire(self, deployment_id: str, kind: str) -> AsyncIterator[None]:
        # No await between the check and the claim, so this is atomic on one loop
        if (active := self._active.get(deployment_id)) is not None:
            raise DeploymentBusyError(deployment_id, active)
        self._active[deployment_id] = kind
        try:
            yield
        finally:
            del self._active[deployment_id]
