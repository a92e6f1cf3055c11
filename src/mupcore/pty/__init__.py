"""PTY shell sessions: interactive shells driven by polling.

Each session wraps a shell on a pseudo-terminal. The registry hands out
ids and serializes access to the sessions it owns.
"""

from mupcore.pty.session import PtySession, SessionStatus
from mupcore.pty.registry import SessionRegistry

__all__ = [
    "PtySession",
    "SessionStatus",
    "SessionRegistry",
]
