"""Tests for SubprocessDriver and progress parsing."""

import asyncio
import sys

import pytest

from stackforge.kernel.ports.process import CommandDescriptor, ProgressFragment
from stackforge.stdlib.adapters.process import SubprocessDriver, parse_progress_line


def python(code: str) -> CommandDescriptor:
    return CommandDescriptor(argv=[sys.executable, "-c", code], label="python")


class TestParseProgressLine:
    """Tests for parse_progress_line."""

    @pytest.mark.parametrize(
        ("line", "percent"),
        [
            ("Receiving objects:  45% (450/1000)", 45.0),
            ("Step 3/4 : RUN make", 75.0),
            ("[+] Building 12.3s (2/8)", 25.0),
            ("Resolving deltas: 100% (10/10), done.", 100.0),
        ],
    )
    def test_estimates(self, line: str, percent: float) -> None:
        fragment = parse_progress_line(line)
        assert fragment is not None
        assert fragment.percent == percent

    def test_free_text(self) -> None:
        assert parse_progress_line("  remote: Enumerating objects  ") == ProgressFragment(
            message="remote: Enumerating objects"
        )

    def test_blank(self) -> None:
        assert parse_progress_line("   ") is None


class TestSubprocessDriver:
    """Tests for SubprocessDriver."""

    @pytest.mark.asyncio
    async def test_captures_output_and_progress(self) -> None:
        fragments: list[ProgressFragment] = []
        code = "import sys; sys.stdout.write('10%\\r20%\\r30%\\n'); print('oops', file=sys.stderr)"

        result = await SubprocessDriver().arun(python(code), on_progress=fragments.append)

        assert result.ok is True
        assert result.exit_code == 0
        assert result.stdout == "10%\r20%\r30%\n"
        assert result.stderr.strip() == "oops"
        percents = [f.percent for f in fragments if f.percent is not None]
        assert percents == [10.0, 20.0, 30.0]

    @pytest.mark.asyncio
    async def test_non_zero_exit(self) -> None:
        result = await SubprocessDriver().arun(python("import sys; sys.exit(3)"))
        assert result.exit_code == 3
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_env_is_merged(self) -> None:
        result = await SubprocessDriver().arun(
            python("import os; print(os.environ['SF_TEST'], 'PATH' in os.environ)"),
            env={"SF_TEST": "hello"},
        )
        assert result.stdout.strip() == "hello True"

    @pytest.mark.asyncio
    async def test_timeout_stops_process(self) -> None:
        driver = SubprocessDriver(kill_grace=1.0)
        result = await driver.arun(python("import time; time.sleep(30)"), timeout=0.2)
        assert result.timed_out is True
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_terminate_in_flight(self) -> None:
        driver = SubprocessDriver(kill_grace=1.0)
        task = asyncio.create_task(driver.arun(python("import time; time.sleep(30)")))
        while not driver._running:
            await asyncio.sleep(0.01)

        await driver.aterminate()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.terminated is True
        assert result.ok is False
