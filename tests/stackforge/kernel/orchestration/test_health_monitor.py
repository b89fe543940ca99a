"""Tests for stackforge.kernel.orchestration.health_monitor module."""

import pytest

from stackforge.kernel.domain.health import (
    HealthOutcome,
    HealthState,
    Readiness,
    ServiceHealthSample,
)
from stackforge.kernel.exceptions import (
    HealthTimeoutError,
    PipelineCancelledError,
    ResourceCrashedError,
)
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.models import HealthMonitorConfig
from stackforge.kernel.orchestration.run_context import RunContext
from stackforge.stdlib.adapters.mock import MockServiceInventory

FAST = HealthMonitorConfig(timeout=0.2, poll_interval=0.01)


def staggered(ready_at: dict[str, int]):
    """Sampler where each service turns healthy at its given poll number."""

    def sampler(names, poll):
        return [
            ServiceHealthSample(
                name,
                running=True,
                health=HealthState.HEALTHY if poll >= ready_at[name] else HealthState.STARTING,
            )
            for name in names
        ]

    return sampler


class TestWaitUntilHealthy:
    """Tests for HealthMonitor.wait_until_healthy."""

    @pytest.mark.asyncio
    async def test_fast_path_on_first_poll(self) -> None:
        inventory = MockServiceInventory(
            [
                ServiceHealthSample("db", True, HealthState.HEALTHY),
                ServiceHealthSample("api", True, HealthState.HEALTHY),
            ]
        )
        progress: list[tuple[int, str]] = []

        report = await HealthMonitor(inventory, FAST).wait_until_healthy(
            ["db", "api"], on_progress=lambda p, m: progress.append((p, m))
        )

        assert report.outcome is HealthOutcome.READY
        assert report.ready is True
        assert report.fast_path is True
        assert report.polls == 1
        assert inventory.polls == 1
        assert [p for p, _ in progress] == [100]

    @pytest.mark.asyncio
    async def test_running_without_health_check_counts_as_healthy(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("worker", True)])
        report = await HealthMonitor(inventory, FAST).wait_until_healthy(["worker"])
        assert report.ready is True
        assert report.classifications == {"worker": Readiness.HEALTHY}

    @pytest.mark.asyncio
    async def test_becomes_healthy_over_several_polls(self) -> None:
        inventory = MockServiceInventory(sampler=staggered({"db": 1, "api": 3}))
        progress: list[int] = []

        report = await HealthMonitor(inventory, FAST).wait_until_healthy(
            ["db", "api"], on_progress=lambda p, m: progress.append(p)
        )

        assert report.outcome is HealthOutcome.READY
        assert report.fast_path is False
        assert report.polls == 3
        assert progress == [50, 100]

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_capped(self) -> None:
        ready_at = {f"svc{i}": i + 1 for i in range(5)}
        inventory = MockServiceInventory(sampler=staggered(ready_at))
        progress: list[int] = []

        await HealthMonitor(inventory, FAST).wait_until_healthy(
            list(ready_at), on_progress=lambda p, m: progress.append(p)
        )

        assert progress == sorted(progress)
        assert len(progress) == len(set(progress))
        assert all(p <= 95 for p in progress[:-1])
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_not_running_fails_before_timeout(self) -> None:
        inventory = MockServiceInventory(
            [
                ServiceHealthSample("db", True, HealthState.HEALTHY),
                ServiceHealthSample("api", False),
            ]
        )
        config = HealthMonitorConfig(timeout=30.0, poll_interval=0.01)

        report = await HealthMonitor(inventory, config).wait_until_healthy(["db", "api"])

        assert report.outcome is HealthOutcome.FAILED
        assert report.failed_service == "api"
        assert report.elapsed < 30.0
        assert "api" in (report.reason or "")

    @pytest.mark.asyncio
    async def test_timeout_lists_pending_services(self) -> None:
        inventory = MockServiceInventory(
            [
                ServiceHealthSample("db", True, HealthState.HEALTHY),
                ServiceHealthSample("api", True, HealthState.STARTING),
            ]
        )
        config = HealthMonitorConfig(timeout=0.05, poll_interval=0.01)

        report = await HealthMonitor(inventory, config).wait_until_healthy(["db", "api"])

        assert report.outcome is HealthOutcome.TIMEOUT
        assert report.pending == ["api"]
        assert report.polls >= 2
        assert "may still be starting" in (report.reason or "")

    @pytest.mark.asyncio
    async def test_missing_services_count_as_pending(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", True)])
        config = HealthMonitorConfig(timeout=0.03, poll_interval=0.01)

        report = await HealthMonitor(inventory, config).wait_until_healthy(["db", "cache"])

        assert report.outcome is HealthOutcome.TIMEOUT
        assert report.classifications["cache"] is Readiness.PENDING

    @pytest.mark.asyncio
    async def test_inventory_errors_are_treated_as_pending(self) -> None:
        inventory = MockServiceInventory(error=ConnectionError("docker not reachable"))
        config = HealthMonitorConfig(timeout=0.03, poll_interval=0.01)

        report = await HealthMonitor(inventory, config).wait_until_healthy(["db"])

        assert report.outcome is HealthOutcome.TIMEOUT
        assert inventory.polls >= 2

    @pytest.mark.asyncio
    async def test_explicit_timeout_overrides_config(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", True, HealthState.STARTING)])
        monitor = HealthMonitor(inventory, HealthMonitorConfig(timeout=60.0, poll_interval=0.01))

        report = await monitor.wait_until_healthy(["db"], timeout=0.03)

        assert report.outcome is HealthOutcome.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancelled_context_stops_waiting(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", True, HealthState.STARTING)])
        context = RunContext()
        await context.cancel("abort")

        with pytest.raises(PipelineCancelledError):
            await HealthMonitor(inventory, FAST).wait_until_healthy(["db"], context=context)
        assert inventory.polls == 0


class TestEnsureHealthy:
    """Tests for HealthMonitor.ensure_healthy."""

    @pytest.mark.asyncio
    async def test_returns_report_when_ready(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", True)])
        report = await HealthMonitor(inventory, FAST).ensure_healthy(["db"])
        assert report.ready is True

    @pytest.mark.asyncio
    async def test_raises_when_crashed(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", False)])
        with pytest.raises(ResourceCrashedError) as exc_info:
            await HealthMonitor(inventory, FAST).ensure_healthy(["db"])
        assert exc_info.value.name == "db"

    @pytest.mark.asyncio
    async def test_raises_on_timeout(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", True, HealthState.UNHEALTHY)])
        with pytest.raises(HealthTimeoutError) as exc_info:
            await HealthMonitor(inventory, FAST).ensure_healthy(["db"], timeout=0.03)
        assert exc_info.value.names == ["db"]
        assert exc_info.value.timeout == 0.03
