"""Session registry: owns every live PTY shell session."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, TYPE_CHECKING

from mupcore.config import TerminalConfig
from mupcore.errors import SessionIOError, SessionNotFoundError
from mupcore.pty.session import PtySession

if TYPE_CHECKING:
    from mupcore.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Manages the lifecycle of N concurrent PTY-backed shells.

    - Ids come from a counter that starts at 1 and never reuses a value
    - The session map is guarded by one lock, held for a single operation
    - Dead shells are noticed lazily, on the next read or write
    - All sessions are closed on cleanup (no orphan shells)
    """

    def __init__(
        self, config: TerminalConfig | None = None, wire: Wire | None = None
    ) -> None:
        self._config = config or TerminalConfig()
        self._wire = wire
        self._sessions: dict[int, PtySession] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def create(self) -> int:
        """Spawn the default shell on a fresh PTY and register it."""
        async with self._lock:
            session_id = next(self._ids)
            session = PtySession(
                id=session_id,
                shell=self._config.resolve_shell(),
                cols=self._config.cols,
                rows=self._config.rows,
                term=self._config.term,
            )
            session.start()
            self._sessions[session_id] = session

        if self._wire:
            self._wire.send_session_created(session_id)
        return session_id

    async def write(self, session_id: int, data: bytes) -> None:
        async with self._lock:
            session = self._lookup("write", session_id)
            try:
                session.write(data, timeout=self._config.write_timeout)
                return
            except SessionIOError as e:
                error = e
                dead = self._detach_if_dead(session)
        await self._reap(dead)
        raise error

    async def read(self, session_id: int) -> bytes:
        """Drain up to one chunk of pending output. Empty means nothing yet."""
        async with self._lock:
            session = self._lookup("read", session_id)
            try:
                return session.read(self._config.read_chunk_size)
            except SessionIOError as e:
                error = e
                dead = self._detach_if_dead(session)
        await self._reap(dead)
        raise error

    async def resize(self, session_id: int, cols: int, rows: int) -> None:
        async with self._lock:
            session = self._lookup("resize", session_id)
            try:
                session.resize(cols, rows)
                return
            except SessionIOError as e:
                error = e
                dead = self._detach_if_dead(session)
        await self._reap(dead)
        raise error

    async def close(self, session_id: int) -> None:
        """Remove a session and release its terminal.

        Only the first caller for an id succeeds; the entry is popped under
        the lock, so a racing close sees ``SessionNotFoundError``.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError("close", session_id)
        # Waiting for the shell to exit happens off the event loop.
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, session.close)

    def get(self, session_id: int) -> PtySession | None:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all active sessions."""
        return [
            {
                "id": s.id,
                "shell": s.shell,
                "pid": s.pid,
                "cols": s.cols,
                "rows": s.rows,
                "alive": s.alive,
                "status": s.status.value,
            }
            for s in self._sessions.values()
        ]

    async def cleanup(self) -> None:
        """Close all sessions. Called on shutdown."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        loop = asyncio.get_running_loop()
        for session in sessions:
            await loop.run_in_executor(None, session.close)
        logger.info("All PTY sessions cleaned up")

    def _lookup(self, operation: str, session_id: int) -> PtySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(operation, session_id)
        return session

    def _detach_if_dead(self, session: PtySession) -> PtySession | None:
        # Caller holds the lock.
        if session.alive:
            return None
        return self._sessions.pop(session.id, None)

    async def _reap(self, session: PtySession | None) -> None:
        """Release a detached dead session and announce its exit."""
        if session is None:
            return
        loop = asyncio.get_running_loop()
        exit_code = await loop.run_in_executor(None, session.close)
        logger.info("PTY session %d exited (code=%s)", session.id, exit_code)
        if self._wire:
            self._wire.send_session_exited(session.id, exit_code)

    def __len__(self) -> int:
        return len(self._sessions)
