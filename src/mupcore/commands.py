"""Command bridge: synchronous request boundary over the async supervisor.

Callers issue discrete requests (``invoke("terminal_read", pty_id=1)``)
and get a ``CommandResult`` back, without ever seeing the event loop.
The loop runs on a private daemon thread and owns the ``Application``;
each request is a single coroutine submitted to it, so registry locks are
only ever taken on the loop and only for the one operation.

Errors never escape the boundary: a ``MupError`` becomes a
``CommandError`` carrying its ``kind``, bad arguments become ``invalid``,
and anything unexpected is logged and reported as ``internal``.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mupcore.app import Application
from mupcore.config import MupConfig
from mupcore.errors import MupError
from mupcore.session.wire import Wire
from mupcore.sysinfo import get_system_info

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Base result of a command."""

    value: Any = None
    kind: str | None = None  # Error kind, set on failure
    message: str = ""
    is_error: bool = False


@dataclass
class CommandOk(CommandResult):
    """Successful command result."""

    is_error: bool = False


@dataclass
class CommandError(CommandResult):
    """Failed command result."""

    is_error: bool = True


class CommandBridge:
    """Runs an ``Application`` on a background loop and exposes it synchronously."""

    def __init__(self, config: MupConfig | None = None, wire: Wire | None = None) -> None:
        self._config = config or MupConfig()
        self.wire = wire or Wire()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._app: Application | None = None
        self._handlers: dict[str, Callable[..., Awaitable[Any]]] = {
            "create_terminal": self._create_terminal,
            "terminal_write": self._terminal_write,
            "terminal_read": self._terminal_read,
            "terminal_resize": self._terminal_resize,
            "terminal_close": self._terminal_close,
            "list_terminals": self._list_terminals,
            "spawn_backend": self._spawn_backend,
            "get_backend_port": self._get_backend_port,
            "check_backend_health": self._check_backend_health,
            "terminate_backend": self._terminate_backend,
            "forward_rpc_call": self._forward_rpc_call,
            "check_rpc_server": self._check_rpc_server,
            "get_system_info": self._get_system_info,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the loop thread, build the application and run its startup."""
        if self._thread is not None:
            return
        loop = asyncio.new_event_loop()
        ready = threading.Event()
        thread = threading.Thread(
            target=self._run_loop, args=(loop, ready), name="mupcore-bridge", daemon=True
        )
        thread.start()
        ready.wait()
        self._loop = loop
        self._thread = thread

        self._app = self._submit(self._build_app())
        self._submit(self._app.startup())

    def stop(self) -> None:
        """Shut the application down and stop the loop thread."""
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return
        if self._app is not None:
            try:
                self._submit(self._app.shutdown())
            except Exception:
                logger.exception("Error during application shutdown")
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        self._loop = None
        self._thread = None
        self._app = None

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()

    async def _build_app(self) -> Application:
        return Application(self._config, wire=self.wire)

    def _submit(self, coro: Awaitable[Any]) -> Any:
        assert self._loop is not None
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)  # type: ignore[arg-type]
        return future.result(timeout=self._config.bridge.request_timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def app(self) -> Application | None:
        return self._app

    def __enter__(self) -> CommandBridge:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def commands(self) -> list[str]:
        return list(self._handlers)

    def invoke(self, name: str, **kwargs: Any) -> CommandResult:
        """Run one command to completion and return its result."""
        handler = self._handlers.get(name)
        if handler is None:
            return CommandError(kind="invalid", message=f"unknown command: {name}")
        if not self.running or self._loop is None:
            return CommandError(kind="internal", message=f"{name}: bridge is not running")
        if threading.current_thread() is self._thread:
            return CommandError(
                kind="internal", message=f"{name}: cannot invoke from the bridge loop"
            )

        timeout = self._config.bridge.request_timeout
        try:
            future = asyncio.run_coroutine_threadsafe(handler(**kwargs), self._loop)
            value = future.result(timeout=timeout)
        except MupError as e:
            return CommandError(kind=e.kind, message=str(e))
        except concurrent.futures.TimeoutError:
            future.cancel()
            return CommandError(kind="timeout", message=f"{name}: no result within {timeout}s")
        except (TypeError, ValueError) as e:
            return CommandError(kind="invalid", message=f"{name}: {e}")
        except Exception as e:
            logger.error("Command %s failed: %s", name, e, exc_info=True)
            return CommandError(kind="internal", message=f"{name}: {e}")
        return CommandOk(value=value)

    # Typed wrappers for the request surface.

    def create_session(self) -> CommandResult:
        return self.invoke("create_terminal")

    def write_session(self, session_id: int, data: bytes | str) -> CommandResult:
        return self.invoke("terminal_write", pty_id=session_id, data=data)

    def read_session(self, session_id: int) -> CommandResult:
        return self.invoke("terminal_read", pty_id=session_id)

    def resize_session(self, session_id: int, cols: int, rows: int) -> CommandResult:
        return self.invoke("terminal_resize", pty_id=session_id, cols=cols, rows=rows)

    def close_session(self, session_id: int) -> CommandResult:
        return self.invoke("terminal_close", pty_id=session_id)

    def spawn_backend(self) -> CommandResult:
        return self.invoke("spawn_backend")

    def get_backend_port(self) -> CommandResult:
        return self.invoke("get_backend_port")

    def check_backend_health(self) -> CommandResult:
        return self.invoke("check_backend_health")

    def terminate_backend(self) -> CommandResult:
        return self.invoke("terminate_backend")

    # ------------------------------------------------------------------
    # Handlers (run on the loop)
    # ------------------------------------------------------------------

    def _require_app(self) -> Application:
        if self._app is None:
            raise RuntimeError("application is not running")
        return self._app

    async def _create_terminal(self) -> int:
        return await self._require_app().sessions.create()

    async def _terminal_write(self, pty_id: int, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        elif isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        elif not isinstance(data, bytes):
            raise TypeError(f"data must be bytes or str, not {type(data).__name__}")
        await self._require_app().sessions.write(pty_id, data)

    async def _terminal_read(self, pty_id: int) -> bytes:
        return await self._require_app().sessions.read(pty_id)

    async def _terminal_resize(self, pty_id: int, cols: int, rows: int) -> None:
        await self._require_app().sessions.resize(pty_id, cols, rows)

    async def _terminal_close(self, pty_id: int) -> None:
        await self._require_app().sessions.close(pty_id)

    async def _list_terminals(self) -> list[dict[str, Any]]:
        return self._require_app().sessions.list_sessions()

    async def _spawn_backend(self) -> None:
        app = self._require_app()
        await app.sidecar.spawn()

    async def _get_backend_port(self) -> int:
        return self._require_app().sidecar.get_port()

    async def _check_backend_health(self) -> bool:
        return await self._require_app().sidecar.check_health()

    async def _terminate_backend(self) -> None:
        await self._require_app().sidecar.terminate()

    async def _forward_rpc_call(self, method: str, params: Any = None) -> Any:
        return await self._require_app().backend.forward_call(method, params)

    async def _check_rpc_server(self) -> bool:
        return await self._require_app().backend.check_server()

    async def _get_system_info(self) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(None, get_system_info)
        return info.to_dict()
