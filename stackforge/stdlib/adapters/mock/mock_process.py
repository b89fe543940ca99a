"""Mock process driver for testing purposes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from stackforge.kernel.ports.process import (
    CommandDescriptor,
    ProcessDriver,
    ProcessResult,
    ProgressCallback,
    ProgressFragment,
)


class MockProcessDriver(ProcessDriver):
    """Returns canned results keyed by program name.

    Parameters
    ----------
    results : Mapping[str, ProcessResult] | None
        Result per ``argv[0]``; unknown programs succeed with empty output
    fragments : Iterable[ProgressFragment]
        Emitted to ``on_progress`` on every run

    Examples
    --------
    Example usage::

        driver = MockProcessDriver({"lsof": ProcessResult(stdout="1234\\n", exit_code=0)})
        result = await driver.arun(CommandDescriptor(argv=["lsof", "-ti", ":8080"]))
        assert driver.commands[0].argv[0] == "lsof"
    """

    def __init__(
        self,
        results: Mapping[str, ProcessResult] | None = None,
        fragments: Iterable[ProgressFragment] = (),
    ) -> None:
        self.results = dict(results or {})
        self.fragments = list(fragments)
        self.commands: list[CommandDescriptor] = []
        self.terminate_count = 0

    async def arun(
        self,
        command: CommandDescriptor,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessResult:
        self.commands.append(command)
        if on_progress is not None:
            for fragment in self.fragments:
                on_progress(fragment)
        return self.results.get(command.argv[0], ProcessResult(exit_code=0))

    async def aterminate(self) -> None:
        self.terminate_count += 1
