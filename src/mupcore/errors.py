"""Error types raised by the supervisor.

Every error carries the operation that failed and a human-readable detail.
The command boundary turns them into ``CommandError`` results keyed by
``kind``.
"""

from __future__ import annotations


class MupError(Exception):
    """Base class for all supervisor errors."""

    kind: str = "internal"

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation}: {detail}")


class SpawnError(MupError):
    """The OS refused to create a process or a PTY."""

    kind = "spawn"


class SessionNotFoundError(MupError):
    """An operation named a session id that is not live."""

    kind = "not_found"

    def __init__(self, operation: str, session_id: int) -> None:
        self.session_id = session_id
        super().__init__(operation, f"session {session_id} not found")


class SessionIOError(MupError):
    """Reading, writing or resizing a live session's terminal failed."""

    kind = "io"

    def __init__(self, operation: str, session_id: int, detail: str) -> None:
        self.session_id = session_id
        super().__init__(operation, f"session {session_id}: {detail}")


class BackendTimeoutError(MupError):
    """A request to the backend exceeded its time bound."""

    kind = "timeout"


class BackendUnavailableError(MupError):
    """The backend has not announced a port (or has exited)."""

    kind = "backend"


class BackendCallError(MupError):
    """The backend answered a forwarded call with a non-2xx status."""

    kind = "backend"

    def __init__(self, operation: str, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(operation, f"backend returned {status_code}: {body}")
