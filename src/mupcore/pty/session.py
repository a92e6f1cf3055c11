"""PTY session: one interactive shell bound to a pseudo-terminal."""

from __future__ import annotations

import enum
import errno
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import subprocess
import termios
import time
from dataclasses import dataclass, field

from mupcore.errors import SessionIOError, SpawnError

logger = logging.getLogger(__name__)

# errno values on the master side that mean the shell side hung up.
_HANGUP_ERRNOS = frozenset({errno.EIO, errno.EBADF, errno.EPIPE})


class SessionStatus(enum.Enum):
    """Lifecycle states for a PTY session."""

    RUNNING = "running"
    EXITED = "exited"  # Shell died on its own, found on the next I/O
    CLOSED = "closed"  # Released by close()


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(): make the PTY slave (stdin) the
    # controlling terminal so job control and ^C work.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def _pack_winsize(cols: int, rows: int) -> bytes:
    return struct.pack("HHHH", rows, cols, 0, 0)


def _validate_geometry(cols: int, rows: int) -> None:
    if not (1 <= cols <= 0xFFFF and 1 <= rows <= 0xFFFF):
        raise ValueError(f"invalid terminal size {cols}x{rows}")


@dataclass
class PtySession:
    """A shell running on the slave side of a PTY.

    The session keeps the master fd itself rather than separate reader and
    writer streams, so geometry changes reach the live terminal through
    the same handle that carries I/O. The master is non-blocking: reads
    are bounded polls and never park the event loop.

    A session is not safe to use from several tasks at once. The
    ``SessionRegistry`` serializes access under its lock, which is what
    lets the raw fd be shared across tasks at all.
    """

    id: int
    shell: str
    cols: int = 80
    rows: int = 24
    term: str = "xterm-256color"
    env: dict[str, str] = field(default_factory=dict)

    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _status: SessionStatus = field(default=SessionStatus.RUNNING, init=False)

    def start(self) -> None:
        """Open a PTY and launch the shell on it."""
        _validate_geometry(self.cols, self.rows)
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError("create", f"failed to open PTY: {e}") from e

        env = {**os.environ, **self.env}
        env["TERM"] = self.term

        try:
            fcntl.ioctl(master_fd, termios.TIOCSWINSZ, _pack_winsize(self.cols, self.rows))
            self._proc = subprocess.Popen(
                [self.shell],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
                env=env,
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError("create", f"failed to spawn shell {self.shell}: {e}") from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        self._master_fd = master_fd
        self._status = SessionStatus.RUNNING
        logger.info(
            "PTY session %d started: pid=%d shell=%s size=%dx%d",
            self.id,
            self._proc.pid,
            self.shell,
            self.cols,
            self.rows,
        )

    def write(self, data: bytes, timeout: float = 5.0) -> None:
        """Write all of ``data`` to the shell's input.

        The master fd is unbuffered, so bytes are visible to the shell as
        soon as ``os.write`` returns. If the terminal's input queue is full,
        wait up to ``timeout`` seconds for room.
        """
        self._ensure_running("write")
        view = memoryview(data)
        deadline = time.monotonic() + timeout
        while view:
            try:
                written = os.write(self._master_fd, view)
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise SessionIOError(
                        "write", self.id, "timed out waiting for the terminal to accept input"
                    ) from None
                select.select([], [self._master_fd], [], remaining)
                continue
            except OSError as e:
                self._note_hangup(e)
                raise SessionIOError("write", self.id, f"failed to write to PTY: {e}") from e
            view = view[written:]

    def read(self, max_bytes: int = 8192) -> bytes:
        """Return whatever output is buffered, up to ``max_bytes``.

        Returns ``b""`` when nothing is available yet.
        """
        self._ensure_running("read")
        try:
            data = os.read(self._master_fd, max_bytes)
        except BlockingIOError:
            return b""
        except OSError as e:
            self._note_hangup(e)
            raise SessionIOError("read", self.id, f"failed to read from PTY: {e}") from e
        if not data:
            # EOF on the master (BSD/macOS) means the slave side is gone.
            self._status = SessionStatus.EXITED
            raise SessionIOError("read", self.id, "shell has exited")
        return data

    def resize(self, cols: int, rows: int) -> None:
        """Apply a new geometry to the live terminal.

        The kernel delivers SIGWINCH to the shell's foreground process group.
        """
        _validate_geometry(cols, rows)
        self._ensure_running("resize")
        try:
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, _pack_winsize(cols, rows))
        except OSError as e:
            self._note_hangup(e)
            raise SessionIOError("resize", self.id, f"failed to resize PTY: {e}") from e
        self.cols = cols
        self.rows = rows

    def get_size(self) -> tuple[int, int]:
        """Read (cols, rows) back from the terminal itself."""
        packed = fcntl.ioctl(self._master_fd, termios.TIOCGWINSZ, b"\0" * 8)
        rows, cols, _, _ = struct.unpack("HHHH", packed)
        return cols, rows

    def close(self, grace: float = 0.5) -> int | None:
        """Release the terminal and make sure the shell is gone.

        Closing the master hangs up the terminal, which sends SIGHUP to the
        shell. Anything still alive after ``grace`` seconds is SIGKILLed
        along with its process group. Returns the exit code if known.
        """
        if self._status == SessionStatus.CLOSED:
            return self.exit_code
        self._status = SessionStatus.CLOSED

        if self._master_fd >= 0:
            try:
                os.close(self._master_fd)
            except OSError as e:
                logger.debug("Closing master fd of session %d: %s", self.id, e)
            self._master_fd = -1

        if self._proc is None:
            return None

        try:
            self._proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            try:
                os.killpg(self._proc.pid, signal.SIGKILL)
                logger.info("Killed PTY session %d (pgid=%d)", self.id, self._proc.pid)
            except ProcessLookupError:
                logger.debug("Process group already gone: %d", self._proc.pid)
            try:
                self._proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning("PTY session %d did not exit after SIGKILL", self.id)

        logger.info("PTY session %d closed (code=%s)", self.id, self.exit_code)
        return self.exit_code

    def _ensure_running(self, operation: str) -> None:
        if self._status != SessionStatus.RUNNING:
            raise SessionIOError(operation, self.id, f"session is {self._status.value}")

    def _note_hangup(self, exc: OSError) -> None:
        if exc.errno in _HANGUP_ERRNOS:
            self._status = SessionStatus.EXITED

    @property
    def alive(self) -> bool:
        return self._status == SessionStatus.RUNNING

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def exit_code(self) -> int | None:
        return self._proc.poll() if self._proc is not None else None
