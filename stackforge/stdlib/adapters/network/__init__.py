"""Local network adapters."""

from stackforge.stdlib.adapters.network.port_reclaimer import PortOwnerTerminator
from stackforge.stdlib.adapters.network.socket_probe import SocketResourceProbe

__all__ = ["PortOwnerTerminator", "SocketResourceProbe"]
