"""Backend sidecar supervision and RPC forwarding."""

from mupcore.backend.sidecar import (
    PORT_ANNOUNCE_PREFIX,
    SidecarState,
    SidecarSupervisor,
    parse_port_line,
)
from mupcore.backend.client import BackendClient

__all__ = [
    "PORT_ANNOUNCE_PREFIX",
    "SidecarState",
    "SidecarSupervisor",
    "parse_port_line",
    "BackendClient",
]
