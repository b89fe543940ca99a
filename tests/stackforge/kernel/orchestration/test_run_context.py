"""Tests for stackforge.kernel.orchestration.run_context module."""

import pytest

from stackforge.kernel.exceptions import DeploymentBusyError, PipelineCancelledError
from stackforge.kernel.orchestration.run_context import ActiveRunGuard, RunContext
from stackforge.kernel.ports.process import ProgressFragment


class TestRunContext:
    """Tests for RunContext."""

    def test_unique_run_ids(self) -> None:
        assert RunContext().run_id != RunContext().run_id

    @pytest.mark.asyncio
    async def test_cancel_runs_terminators_once(self) -> None:
        context = RunContext()
        calls: list[str] = []

        async def terminate() -> None:
            calls.append("terminate")

        context.add_terminator(terminate)
        await context.cancel("stop")
        await context.cancel("again")

        assert calls == ["terminate"]
        assert context.cancelled is True
        assert context.cancel_reason == "stop"

    @pytest.mark.asyncio
    async def test_failing_terminator_does_not_block_others(self) -> None:
        context = RunContext()
        calls: list[str] = []

        async def broken() -> None:
            raise OSError("no such process")

        async def fine() -> None:
            calls.append("fine")

        context.add_terminator(broken)
        context.add_terminator(fine)
        await context.cancel()

        assert calls == ["fine"]

    @pytest.mark.asyncio
    async def test_removed_terminator_is_not_called(self) -> None:
        context = RunContext()
        calls: list[str] = []

        async def terminate() -> None:
            calls.append("terminate")

        remove = context.add_terminator(terminate)
        remove()
        remove()
        await context.cancel()

        assert calls == []

    @pytest.mark.asyncio
    async def test_raise_if_cancelled(self) -> None:
        context = RunContext()
        context.raise_if_cancelled()
        await context.cancel("user")
        with pytest.raises(PipelineCancelledError, match="user"):
            context.raise_if_cancelled()

    def test_progress_is_clamped_and_forwarded(self) -> None:
        context = RunContext()
        seen: list[tuple[float, str | None]] = []
        context.report_progress(10)
        context.bind_progress(lambda percent, message: seen.append((percent, message)))

        context.report_progress(150, "done")
        context.report_progress(-5)
        context.on_fragment(ProgressFragment(message="Receiving objects", percent=45))
        context.on_fragment(ProgressFragment(message="remote: Counting"))

        assert seen == [(100.0, "done"), (0.0, None), (45.0, "Receiving objects")]


class TestActiveRunGuard:
    """Tests for ActiveRunGuard."""

    @pytest.mark.asyncio
    async def test_second_run_fails_fast(self) -> None:
        guard = ActiveRunGuard()
        async with guard.acquire("local", "pipeline"):
            assert guard.is_busy("local")
            assert guard.active_kind("local") == "pipeline"
            with pytest.raises(DeploymentBusyError, match="pipeline"):
                async with guard.acquire("local", "update"):
                    pass
        assert not guard.is_busy("local")

    @pytest.mark.asyncio
    async def test_deployments_are_independent(self) -> None:
        guard = ActiveRunGuard()
        async with guard.acquire("a", "pipeline"):
            async with guard.acquire("b", "update"):
                assert guard.is_busy("a") and guard.is_busy("b")

    @pytest.mark.asyncio
    async def test_released_after_error(self) -> None:
        guard = ActiveRunGuard()
        with pytest.raises(RuntimeError):
            async with guard.acquire("local", "update"):
                raise RuntimeError("boom")
        assert guard.active_kind("local") is None
