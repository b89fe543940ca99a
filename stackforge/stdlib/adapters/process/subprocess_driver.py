"""asyncio subprocess implementation of the process driver port."""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Callable, Mapping

from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.process import (
    CommandDescriptor,
    ProcessDriver,
    ProcessResult,
    ProgressCallback,
    ProgressFragment,
)

logger = get_logger(__name__)

ProgressParser = Callable[[str], ProgressFragment | None]

# "Receiving objects:  45% (450/1000)", "Step 3/10", "[+] Building 12.3s (4/9)"
_PERCENT = re.compile(r"(\d{1,3})%")
_STEP = re.compile(r"\b(?:Step|STEP)\s+(\d+)/(\d+)")
_COUNT = re.compile(r"\((\d+)/(\d+)\)")


def parse_progress_line(line: str) -> ProgressFragment | None:
    """Turn one line of tool output into a progress fragment.

    Examples
    --------
    >>> parse_progress_line("Receiving objects:  45% (450/1000)").percent
    45.0
    >>> parse_progress_line("Step 3/4 : RUN make").percent
    75.0
    >>> parse_progress_line("") is None
    True
    """
    text = line.strip()
    if not text:
        return None
    if match := _PERCENT.search(text):
        return ProgressFragment(message=text, percent=min(100.0, float(match.group(1))))
    if match := _STEP.search(text) or _COUNT.search(text):
        done, total = int(match.group(1)), int(match.group(2))
        if total > 0:
            return ProgressFragment(message=text, percent=min(100.0, done / total * 100))
    return ProgressFragment(message=text)


class SubprocessDriver(ProcessDriver):
    """Runs commands with ``asyncio.create_subprocess_exec``.

    Output of both streams is split on newlines and carriage returns, so
    in-place progress bars produce one fragment per redraw.

    Parameters
    ----------
    kill_grace : float
        Seconds a terminated process gets before it is killed
    parser : ProgressParser
        Converts output lines into progress fragments
    """

    def __init__(
        self, kill_grace: float = 5.0, parser: ProgressParser = parse_progress_line
    ) -> None:
        self.kill_grace = kill_grace
        self.parser = parser
        self._running: set[asyncio.subprocess.Process] = set()
        self._terminated: set[asyncio.subprocess.Process] = set()

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        chunks: list[str],
        on_progress: ProgressCallback | None,
    ) -> None:
        if stream is None:
            return
        pending = ""
        while data := await stream.read(4096):
            text = data.decode("utf-8", errors="replace")
            chunks.append(text)
            pending += text
            *lines, pending = re.split(r"[\r\n]", pending)
            if on_progress is not None:
                for line in lines:
                    if (fragment := self.parser(line)) is not None:
                        on_progress(fragment)
        if pending and on_progress is not None:
            if (fragment := self.parser(pending)) is not None:
                on_progress(fragment)

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except TimeoutError:
            logger.warning("Process {pid} ignored SIGTERM, killing", pid=process.pid)
            process.kill()
            await process.wait()

    async def arun(
        self,
        command: CommandDescriptor,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessResult:
        merged_env = {**os.environ, **env} if env else None
        logger.debug("Running {command}", command=command.display)
        process = await asyncio.create_subprocess_exec(
            *command.argv,
            cwd=cwd,
            env=merged_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._running.add(process)
        stdout: list[str] = []
        stderr: list[str] = []
        timed_out = False
        pumps = asyncio.gather(
            self._pump(process.stdout, stdout, on_progress),
            self._pump(process.stderr, stderr, on_progress),
        )
        try:
            try:
                await asyncio.wait_for(asyncio.shield(pumps), timeout=timeout)
            except TimeoutError:
                timed_out = True
                logger.warning(
                    "{command} timed out after {timeout}s", command=command.display, timeout=timeout
                )
                await self._stop(process)
            await pumps
            await process.wait()
        except asyncio.CancelledError:
            await self._stop(process)
            raise
        finally:
            self._running.discard(process)

        terminated = process in self._terminated
        self._terminated.discard(process)
        result = ProcessResult(
            stdout="".join(stdout),
            stderr="".join(stderr),
            exit_code=process.returncode,
            timed_out=timed_out,
            terminated=terminated,
        )
        if not result.ok:
            logger.debug(
                "{command} exited with {code}", command=command.display, code=result.exit_code
            )
        return result

    async def aterminate(self) -> None:
        processes = [p for p in self._running if p.returncode is None]
        self._terminated.update(processes)
        await asyncio.gather(*(self._stop(p) for p in processes))
