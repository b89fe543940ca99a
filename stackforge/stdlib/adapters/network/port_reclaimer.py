"""Last-resort reclaiming of ports held by foreign processes."""

from __future__ import annotations

import os
import signal

from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.process import CommandDescriptor, ProcessDriver
from stackforge.kernel.ports.resource_probe import PortReclaimer

logger = get_logger(__name__)


class PortOwnerTerminator(PortReclaimer):
    """Sends SIGTERM to every process ``lsof`` reports for a port.

    POSIX only; the conflict resolver never selects it elsewhere.
    """

    def __init__(self, driver: ProcessDriver, sig: int = signal.SIGTERM) -> None:
        self.driver = driver
        self.sig = sig

    async def _pids(self, port: int) -> list[int]:
        result = await self.driver.arun(
            CommandDescriptor(argv=["lsof", "-ti", f":{port}"], label=f"lsof -ti :{port}"),
            timeout=10,
        )
        # lsof exits with 1 when nothing matches
        if not result.ok:
            return []
        return [int(token) for token in result.stdout.split() if token.isdigit()]

    async def aterminate_owner(self, port: int) -> bool:
        signalled = False
        for pid in await self._pids(port):
            if pid == os.getpid():
                continue
            try:
                os.kill(pid, self.sig)
            except ProcessLookupError:
                continue
            except PermissionError as e:
                logger.warning(
                    "Not allowed to signal pid {pid} on port {port}: {error}",
                    pid=pid,
                    port=port,
                    error=e,
                )
                continue
            logger.info(
                "Sent signal {sig} to pid {pid} holding port {port}",
                sig=self.sig,
                pid=pid,
                port=port,
            )
            signalled = True
        return signalled
