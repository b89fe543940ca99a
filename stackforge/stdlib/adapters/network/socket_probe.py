"""Socket based port probe."""

from __future__ import annotations

import asyncio
import errno
import socket

from stackforge.kernel.logging import get_logger
from stackforge.kernel.ports.process import CommandDescriptor, ProcessDriver
from stackforge.kernel.ports.resource_probe import ResourceProbe

logger = get_logger(__name__)


def _bind_fails(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                return True
            # Permission errors and the like do not mean the port is taken
            logger.debug("Probe of port {port} failed: {error}", port=port, error=e)
            return False
    return False


class SocketResourceProbe(ResourceProbe):
    """Checks ports by trying to bind them on the loopback interface.

    Owners are described with ``lsof`` through a process driver when one
    is given; otherwise ``adescribe_owner`` returns None.
    """

    def __init__(self, driver: ProcessDriver | None = None, host: str = "127.0.0.1") -> None:
        self.driver = driver
        self.host = host

    async def ais_in_use(self, port: int) -> bool:
        return await asyncio.to_thread(_bind_fails, self.host, port)

    async def adescribe_owner(self, port: int) -> str | None:
        if self.driver is None:
            return None
        command = CommandDescriptor(
            argv=["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN"], label=f"lsof :{port}"
        )
        result = await self.driver.arun(command, timeout=10)
        if not result.ok:
            return None
        # First line is the header: COMMAND PID USER ...
        rows = [line.split() for line in result.stdout.splitlines()[1:] if line.strip()]
        if not rows or len(rows[0]) < 2:
            return None
        return f"{rows[0][0]} (pid {rows[0][1]})"
