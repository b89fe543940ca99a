"""Tests for stackforge.kernel.orchestration.gates module."""

import pytest

from stackforge.kernel.domain.health import HealthState, ServiceHealthSample
from stackforge.kernel.domain.pipeline_run import RunStatus
from stackforge.kernel.domain.unit import Unit
from stackforge.kernel.exceptions import ResourceConflictError, ResourceCrashedError
from stackforge.kernel.orchestration.conflict_resolver import ConflictResolver
from stackforge.kernel.orchestration.events import PipelineProgress
from stackforge.kernel.orchestration.gates import conflict_gate, health_gate
from stackforge.kernel.orchestration.health_monitor import HealthMonitor
from stackforge.kernel.orchestration.models import ConflictResolverConfig, HealthMonitorConfig
from stackforge.kernel.orchestration.pipeline import Phase, PhasePipeline
from stackforge.kernel.orchestration.run_context import RunContext
from stackforge.stdlib.adapters.mock import MockResourceProbe, MockServiceInventory


def _resolver(probe: MockResourceProbe) -> ConflictResolver:
    return ConflictResolver(probe, (), ConflictResolverConfig(max_attempts=1, settle_time=0))


class TestConflictGate:
    """Tests for conflict_gate."""

    @pytest.mark.asyncio
    async def test_passes_when_ports_free(self) -> None:
        gate = conflict_gate(_resolver(MockResourceProbe()), [5432])
        await gate(RunContext())

    @pytest.mark.asyncio
    async def test_raises_with_conflicts(self) -> None:
        gate = conflict_gate(_resolver(MockResourceProbe(in_use=[5432])), [5432, 6379])
        with pytest.raises(ResourceConflictError) as exc_info:
            await gate(RunContext())
        assert [c.resource_id for c in exc_info.value.conflicts] == [5432]


class TestHealthGate:
    """Tests for health_gate."""

    @pytest.mark.asyncio
    async def test_raises_when_service_crashed(self) -> None:
        inventory = MockServiceInventory([ServiceHealthSample("db", running=False)])
        gate = health_gate(HealthMonitor(inventory, HealthMonitorConfig(0.1, 0.01)), ["db"])
        with pytest.raises(ResourceCrashedError):
            await gate(RunContext())

    @pytest.mark.asyncio
    async def test_gates_a_pipeline_phase(self) -> None:
        inventory = MockServiceInventory(
            [ServiceHealthSample("db", running=True, health=HealthState.HEALTHY)]
        )
        monitor = HealthMonitor(inventory, HealthMonitorConfig(0.1, 0.01))
        ran: list[str] = []

        async def seed(unit: Unit, context: RunContext) -> None:
            ran.append(unit.id)

        pipeline = PhasePipeline([Phase("seed", seed, gate=health_gate(monitor, ["db"]))])
        result = await pipeline.execute([Unit("fixtures")])

        assert result.status is RunStatus.COMPLETE
        assert ran == ["fixtures"]
        assert inventory.polls == 1

    @pytest.mark.asyncio
    async def test_port_conflict_fails_the_pipeline(self) -> None:
        ran: list[str] = []

        async def start(unit: Unit, context: RunContext) -> None:
            ran.append(unit.id)

        gate = conflict_gate(_resolver(MockResourceProbe(in_use=[8080])), [8080])
        result = await PhasePipeline([Phase("start", start, gate=gate)]).execute([Unit("web")])

        assert result.status is RunStatus.FAILED
        assert "could not be automatically freed" in result.message
        assert ran == []

    @pytest.mark.asyncio
    async def test_health_progress_reaches_pipeline_observer(self) -> None:
        def sampler(names, poll):
            ready_at = {"db": 1, "api": 3}
            return [
                ServiceHealthSample(
                    name,
                    running=True,
                    health=HealthState.HEALTHY if poll >= ready_at[name] else HealthState.STARTING,
                )
                for name in names
            ]

        inventory = MockServiceInventory(sampler=sampler)
        monitor = HealthMonitor(inventory, HealthMonitorConfig(1.0, 0.01))
        updates: list[PipelineProgress] = []

        async def seed(unit: Unit, context: RunContext) -> None:
            pass

        pipeline = PhasePipeline(
            [Phase("seed", seed, gate=health_gate(monitor, ["db", "api"]))],
            on_progress=updates.append,
        )
        result = await pipeline.execute([Unit("fixtures")])

        assert result.status is RunStatus.COMPLETE
        messages = [update.message for update in updates]
        assert messages.index("1/2 service(s) healthy") < messages.index(
            "All 2 service(s) healthy"
        )
        assert messages.index("All 2 service(s) healthy") < messages.index("seed: fixtures")
        gate_updates = [u for u in updates if "service(s) healthy" in u.message]
        assert all(u.phase == "seed" and u.percent == 0.0 for u in gate_updates)
        percents = [update.percent for update in updates]
        assert percents == sorted(percents)
