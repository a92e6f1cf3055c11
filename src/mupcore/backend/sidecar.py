"""Sidecar supervisor: owns the single backend server process.

The backend binds a port of its own choosing and announces it on stdout
with a marker line::

    MUX_SERVER_PORT:<port>

The supervisor spawns the process, drains its output in a background
task, publishes the announced port, and forgets it again when the
process exits.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

import httpx

from mupcore.config import BackendConfig
from mupcore.errors import SpawnError

if TYPE_CHECKING:
    from mupcore.session.wire import Wire

logger = logging.getLogger(__name__)

PORT_ANNOUNCE_PREFIX = "MUX_SERVER_PORT:"


class SidecarState(enum.Enum):
    """Lifecycle states for the backend process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"  # Port announced
    TERMINATED = "terminated"


def parse_port_line(line: str) -> int | None:
    """Return the port announced by ``line``, or None if it is not a marker."""
    text = line.strip()
    if not text.startswith(PORT_ANNOUNCE_PREFIX):
        return None
    value = text[len(PORT_ANNOUNCE_PREFIX):].strip()
    if not value.isdigit():
        return None
    port = int(value)
    if not 0 < port <= 0xFFFF:
        return None
    return port


class SidecarSupervisor:
    """Spawns, watches and kills the backend process.

    At most one process is tracked at a time. Every spawn gets a
    generation number; a monitor task only clears the tracked handle and
    port if its generation is still current, so a late exit from a
    replaced process never clobbers its successor.
    """

    def __init__(self, config: BackendConfig | None = None, wire: Wire | None = None) -> None:
        self._config = config or BackendConfig()
        self._wire = wire
        self._lock = asyncio.Lock()
        self._proc: asyncio.subprocess.Process | None = None
        self._port: int = 0
        self._state = SidecarState.NOT_STARTED
        self._generation = 0
        self._monitor_task: asyncio.Task | None = None

    async def spawn(self) -> None:
        """Launch the backend and return without waiting for its port.

        A process that is already tracked is killed first, under the same
        lock hold as the launch, so overlapping spawns never leave two
        instances running.
        """
        command = self._config.command
        if not command:
            raise SpawnError("spawn_backend", "backend command is empty")

        async with self._lock:
            if self._proc is not None:
                logger.warning(
                    "Backend already running (pid=%d), replacing it", self._proc.pid
                )
                self._kill_locked()

            logger.info("Starting backend sidecar: %s", " ".join(command))
            try:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise SpawnError("spawn_backend", f"failed to spawn {command[0]}: {e}") from e

            self._generation += 1
            self._proc = proc
            self._port = 0
            self._state = SidecarState.STARTING
            self._monitor_task = asyncio.create_task(
                self._monitor(proc, self._generation),
                name=f"sidecar-monitor-{self._generation}",
            )
        logger.info("Backend sidecar spawned: pid=%d", proc.pid)

    async def _monitor(self, proc: asyncio.subprocess.Process, generation: int) -> None:
        """Consume stdout until it closes, then record the exit."""
        assert proc.stdout is not None and proc.stderr is not None
        stderr_task = asyncio.create_task(self._drain_stderr(proc.stderr))
        announced = False
        while True:
            try:
                raw = await proc.stdout.readline()
            except ValueError:
                # Line over the stream limit; the reader has already dropped it.
                logger.debug("Skipping oversized sidecar stdout line")
                continue
            except OSError as e:
                # A broken stream ends supervision like an EOF would.
                logger.debug("Sidecar stdout ended: %s", e)
                break
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            logger.debug("[sidecar stdout] %s", line)
            port = parse_port_line(line)
            if port is None:
                continue
            if announced:
                logger.warning("Ignoring repeated port announcement: %d", port)
                continue
            announced = True
            await self._publish_port(port, generation)

        exit_code = await proc.wait()
        await stderr_task
        logger.info("[sidecar] Process terminated with code: %s", exit_code)

        async with self._lock:
            if self._generation == generation:
                self._proc = None
                self._port = 0
                self._state = SidecarState.TERMINATED
        if self._wire:
            self._wire.send_backend_terminated(exit_code)

    async def _publish_port(self, port: int, generation: int) -> None:
        async with self._lock:
            if self._generation != generation:
                return
            self._port = port
            self._state = SidecarState.RUNNING
        logger.info("Sidecar announced port: %d", port)
        if self._wire:
            self._wire.send_backend_ready(port)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                continue
            except OSError as e:
                logger.debug("Sidecar stderr ended: %s", e)
                return
            if not raw:
                return
            logger.warning("[sidecar stderr] %s", raw.decode("utf-8", errors="replace").rstrip())

    def get_port(self) -> int:
        """The announced port, or 0 when unknown."""
        return self._port

    @property
    def state(self) -> SidecarState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    def base_url(self) -> str | None:
        """Loopback URL of the backend, or None while the port is unknown."""
        port = self._port
        if port == 0:
            return None
        return f"http://{self._config.host}:{port}"

    async def check_health(self) -> bool:
        """Probe the backend's health endpoint once.

        Never touches the network while the port is unknown. Any transport
        error, including a timeout, reports unhealthy.
        """
        base_url = self.base_url()
        if base_url is None:
            return False
        url = base_url + self._config.health_path
        try:
            async with httpx.AsyncClient(timeout=self._config.health_timeout) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Health probe to %s failed: %s", url, e)
            return False
        return response.is_success

    async def terminate(self) -> None:
        """Kill the tracked process, if any, and forget its port."""
        async with self._lock:
            self._kill_locked()

    def _kill_locked(self) -> None:
        # Caller holds the lock.
        proc = self._proc
        self._proc = None
        self._port = 0
        if proc is None:
            return
        self._state = SidecarState.TERMINATED
        logger.info("Terminating backend sidecar (pid=%d)", proc.pid)
        try:
            proc.kill()
        except ProcessLookupError:
            logger.debug("Sidecar already exited: %d", proc.pid)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Terminate and wait for the monitor task to reap the process."""
        await self.terminate()
        task = self._monitor_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Sidecar monitor did not finish within %.1fs", timeout)
