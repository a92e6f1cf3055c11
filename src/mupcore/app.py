"""Application: owns the supervisor's state from startup to shutdown."""

from __future__ import annotations

import logging

from mupcore.backend.client import BackendClient
from mupcore.backend.sidecar import SidecarSupervisor
from mupcore.config import MupConfig
from mupcore.errors import SpawnError
from mupcore.pty.registry import SessionRegistry
from mupcore.session.wire import Wire

logger = logging.getLogger(__name__)


class Application:
    """Session registry, sidecar and wire, tied to one lifecycle.

    Must be constructed and used on the event loop that runs it; the
    ``CommandBridge`` takes care of that for synchronous callers.
    """

    def __init__(self, config: MupConfig | None = None, wire: Wire | None = None) -> None:
        self.config = config or MupConfig()
        self.wire = wire or Wire()
        self.sessions = SessionRegistry(self.config.terminal, wire=self.wire)
        self.sidecar = SidecarSupervisor(self.config.backend, wire=self.wire)
        self.backend = BackendClient(self.sidecar, timeout=self.config.backend.rpc_timeout)
        self._shut_down = False

    @property
    def backend_available(self) -> bool:
        """Whether a backend process is currently tracked by the sidecar."""
        return self.sidecar.pid is not None

    async def startup(self) -> None:
        """Start the backend if configured. Never fails on a missing backend."""
        if not self.config.backend.autostart:
            logger.info("Backend autostart disabled")
            return
        await self.spawn_backend()

    async def spawn_backend(self) -> bool:
        """Spawn the backend, degrading instead of failing. Returns success."""
        try:
            await self.sidecar.spawn()
        except SpawnError as e:
            logger.error("Backend unavailable: %s", e)
            return False
        return True

    async def shutdown(self) -> None:
        """Announce closing, stop the backend and close all sessions."""
        if self._shut_down:
            return
        self._shut_down = True
        self.wire.send_app_closing()
        await self.sidecar.shutdown()
        await self.sessions.cleanup()
        await self.backend.aclose()
        self.wire.close()
        logger.info("Application shut down")
