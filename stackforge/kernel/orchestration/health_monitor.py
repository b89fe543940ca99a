"""Health-gated readiness.

"Ready" is decided by the services' health signals, never by the exit code
of the command that started them. A running service without a declared
health check is assumed ready once it runs; this is weaker than a confirmed
health signal and is kept on purpose so services without probes keep their
current readiness timing.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Sequence

from stackforge.kernel.domain.health import HealthOutcome, HealthReport, Readiness
from stackforge.kernel.exceptions import HealthTimeoutError, ResourceCrashedError
from stackforge.kernel.logging import get_logger
from stackforge.kernel.orchestration.models import HealthMonitorConfig
from stackforge.kernel.orchestration.run_context import RunContext
from stackforge.kernel.ports.services import ServiceInventory

logger = get_logger(__name__)

HealthProgressCallback = Callable[[int, str], None]

# Progress stays below 100 until every service is confirmed healthy
PROGRESS_CAP = 95


class HealthMonitor:
    """Polls a set of services until all are healthy, one fails, or time runs out.

    Parameters
    ----------
    inventory : ServiceInventory
        Source of run/health samples
    config : HealthMonitorConfig | None
        Default timeout and poll interval
    """

    def __init__(
        self, inventory: ServiceInventory, config: HealthMonitorConfig | None = None
    ) -> None:
        self.inventory = inventory
        self.config = config or HealthMonitorConfig()

    async def wait_until_healthy(
        self,
        names: Sequence[str],
        timeout: float | None = None,
        poll_interval: float | None = None,
        on_progress: HealthProgressCallback | None = None,
        *,
        context: RunContext | None = None,
    ) -> HealthReport:
        """Wait for every named service to become healthy.

        All services are sampled in one batch per poll. A service observed
        not running aborts the wait immediately with ``FAILED``. Services
        missing from the inventory are treated as still starting.

        Parameters
        ----------
        names : Sequence[str]
            Services to wait for
        timeout : float | None
            Seconds before giving up with ``TIMEOUT``
        poll_interval : float | None
            Seconds between polls
        on_progress : HealthProgressCallback | None
            Receives ``(percent, message)`` whenever the percentage increases,
            and a final 100 on success
        context : RunContext | None
            Run whose cancellation flag is honored between polls

        Returns
        -------
        HealthReport
            READY (``fast_path`` if healthy on the first poll), FAILED or TIMEOUT
        """
        timeout = self.config.timeout if timeout is None else timeout
        poll_interval = self.config.poll_interval if poll_interval is None else poll_interval
        wanted = list(dict.fromkeys(names))
        started = time.monotonic()
        deadline = started + timeout

        classifications = dict.fromkeys(wanted, Readiness.PENDING)
        last_percent = 0
        polls = 0

        logger.info(
            "Waiting up to {timeout}s for {count} service(s) to become healthy",
            timeout=timeout,
            count=len(wanted),
        )

        while True:
            if context is not None:
                context.raise_if_cancelled()

            polls += 1
            try:
                samples = await self.inventory.asample(wanted)
            except Exception as exc:
                # The inventory itself may be briefly unavailable while containers start
                logger.warning("Health poll {poll} failed: {error}", poll=polls, error=exc)
                samples = []

            seen = {sample.name: sample for sample in samples if sample.name in classifications}
            for name in wanted:
                sample = seen.get(name)
                classifications[name] = sample.classify() if sample else Readiness.PENDING

            crashed = [n for n in wanted if classifications[n] is Readiness.NOT_RUNNING]
            if crashed:
                error = ResourceCrashedError(crashed[0])
                logger.error("{error}", error=error)
                return HealthReport(
                    outcome=HealthOutcome.FAILED,
                    classifications=dict(classifications),
                    reason=str(error),
                    failed_service=crashed[0],
                    polls=polls,
                    elapsed=time.monotonic() - started,
                )

            healthy = sum(1 for state in classifications.values() if state is Readiness.HEALTHY)
            total = len(wanted)

            if healthy == total:
                fast_path = polls == 1
                if on_progress is not None:
                    on_progress(100, f"All {total} service(s) healthy")
                logger.info(
                    "All {total} service(s) healthy after {polls} poll(s){fast}",
                    total=total,
                    polls=polls,
                    fast=" (already running)" if fast_path else "",
                )
                return HealthReport(
                    outcome=HealthOutcome.READY,
                    fast_path=fast_path,
                    classifications=dict(classifications),
                    polls=polls,
                    elapsed=time.monotonic() - started,
                )

            percent = min(PROGRESS_CAP, math.floor(healthy / total * 100))
            if percent > last_percent:
                last_percent = percent
                if on_progress is not None:
                    on_progress(percent, f"{healthy}/{total} service(s) healthy")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                error = HealthTimeoutError(
                    [n for n in wanted if classifications[n] is not Readiness.HEALTHY], timeout
                )
                logger.warning("{error}", error=error)
                return HealthReport(
                    outcome=HealthOutcome.TIMEOUT,
                    classifications=dict(classifications),
                    reason=str(error),
                    polls=polls,
                    elapsed=time.monotonic() - started,
                )

            await asyncio.sleep(min(poll_interval, remaining))

    async def ensure_healthy(
        self,
        names: Sequence[str],
        timeout: float | None = None,
        poll_interval: float | None = None,
        on_progress: HealthProgressCallback | None = None,
        *,
        context: RunContext | None = None,
    ) -> HealthReport:
        """Like ``wait_until_healthy`` but raises on anything other than READY.

        Raises
        ------
        ResourceCrashedError
            If a service was observed not running
        HealthTimeoutError
            If the services did not become healthy in time
        """
        report = await self.wait_until_healthy(
            names, timeout, poll_interval, on_progress, context=context
        )
        if report.outcome is HealthOutcome.FAILED:
            raise ResourceCrashedError(report.failed_service or "unknown")
        if report.outcome is HealthOutcome.TIMEOUT:
            effective = self.config.timeout if timeout is None else timeout
            raise HealthTimeoutError(report.pending, effective)
        return report
