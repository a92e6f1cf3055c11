"""Wire protocol: decouples the supervisor from its collaborators.

Events flow from the session registry and the sidecar supervisor to
whoever is listening (a UI, the CLI, tests). Notifications are
fire-and-forget: nothing waits for a subscriber to consume them.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    SESSION_EXITED = "session_exited"
    BACKEND_READY = "backend_ready"
    BACKEND_TERMINATED = "backend_terminated"
    APP_CLOSING = "app_closing"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[WireEvent], None]


class Wire:
    """Async message bus: supervisor -> collaborators.

    Single-producer, multi-consumer broadcast. Consumers on the event
    loop ``subscribe()`` to a queue; consumers elsewhere register a
    plain callback with ``add_listener()``.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._listeners: list[Listener] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers and listeners.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Wire listener failed on %s", event.type.value)

    def send_session_created(self, session_id: int) -> None:
        self.send(
            WireEvent(type=EventType.SESSION_CREATED, data={"session_id": session_id})
        )

    def send_session_exited(self, session_id: int, exit_code: int | None) -> None:
        """Notify that a session's shell was found dead on I/O."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXITED,
                data={"session_id": session_id, "exit_code": exit_code},
            )
        )

    def send_backend_ready(self, port: int) -> None:
        self.send(WireEvent(type=EventType.BACKEND_READY, data={"port": port}))

    def send_backend_terminated(self, exit_code: int | None) -> None:
        self.send(
            WireEvent(
                type=EventType.BACKEND_TERMINATED, data={"exit_code": exit_code}
            )
        )

    def send_app_closing(self) -> None:
        self.send(WireEvent(type=EventType.APP_CLOSING))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked synchronously for every event."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
