"""CLI entry point for mupcore."""

from __future__ import annotations

import json
import logging
import os
import select
import shlex
import shutil
import signal
import sys
import threading
import time

import typer

from mupcore.commands import CommandBridge
from mupcore.config import MupConfig
from mupcore.session.wire import WireEvent
from mupcore.sysinfo import get_system_info

app = typer.Typer(
    name="mupcore",
    help="Supervise PTY shell sessions and the mup backend sidecar.",
    no_args_is_help=True,
)

# Poll interval for the attached shell, in seconds.
_POLL_INTERVAL = 0.02


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None, backend: str | None = None) -> MupConfig:
    config = MupConfig.load(config_file)
    if backend:
        config.backend.command = shlex.split(backend)
    return config


def _print_event(event: WireEvent) -> None:
    payload = json.dumps(event.data) if event.data else ""
    typer.echo(f"[{event.type.value}] {payload}".rstrip())


@app.command()
def run(
    backend: str | None = typer.Option(
        None, "--backend", "-b", help="Backend command line (overrides config)."
    ),
    no_backend: bool = typer.Option(
        False, "--no-backend", help="Do not spawn the backend on startup."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run the supervisor and print its events until interrupted."""
    setup_logging(verbose)
    config = _load_config(config_file, backend)
    if no_backend:
        config.backend.autostart = False

    bridge = CommandBridge(config)
    bridge.wire.add_listener(_print_event)
    bridge.start()
    typer.echo("mupcore v0.1.0")
    typer.echo(f"Backend: {' '.join(config.backend.command)}")
    typer.echo("Press Ctrl-C to stop.")
    typer.echo("---")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("Shutting down...")
    finally:
        bridge.stop()


@app.command()
def shell(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Open a supervised shell session attached to this terminal."""
    import termios
    import tty

    setup_logging(verbose)
    if not sys.stdin.isatty():
        typer.echo("Error: shell needs an interactive terminal.", err=True)
        raise typer.Exit(1)

    config = _load_config(config_file)
    config.backend.autostart = False

    with CommandBridge(config) as bridge:
        result = bridge.create_session()
        if result.is_error:
            typer.echo(f"Error: {result.message}", err=True)
            raise typer.Exit(1)
        session_id: int = result.value

        resized = threading.Event()
        resized.set()
        previous = signal.signal(signal.SIGWINCH, lambda *_: resized.set())

        stdin_fd = sys.stdin.fileno()
        saved = termios.tcgetattr(stdin_fd)
        try:
            tty.setraw(stdin_fd)
            _pump(bridge, session_id, stdin_fd, resized)
        finally:
            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved)
            signal.signal(signal.SIGWINCH, previous)
            bridge.close_session(session_id)


def _pump(
    bridge: CommandBridge, session_id: int, stdin_fd: int, resized: threading.Event
) -> None:
    """Shuttle bytes between the local terminal and a session until it ends."""
    stdout_fd = sys.stdout.fileno()
    while True:
        if resized.is_set():
            resized.clear()
            size = shutil.get_terminal_size()
            bridge.resize_session(session_id, size.columns, size.lines)

        readable, _, _ = select.select([stdin_fd], [], [], _POLL_INTERVAL)
        if readable:
            data = os.read(stdin_fd, 1024)
            if not data or bridge.write_session(session_id, data).is_error:
                return

        while True:
            result = bridge.read_session(session_id)
            if result.is_error:
                return
            if not result.value:
                break
            os.write(stdout_fd, result.value)


@app.command()
def health(
    backend: str | None = typer.Option(
        None, "--backend", "-b", help="Backend command line (overrides config)."
    ),
    wait: float = typer.Option(
        10.0, "--wait", "-w", help="Seconds to wait for the backend to announce its port."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Spawn the backend, report its port and health, then stop it."""
    setup_logging(verbose)
    config = _load_config(config_file, backend)
    config.backend.autostart = False

    with CommandBridge(config) as bridge:
        spawned = bridge.spawn_backend()
        if spawned.is_error:
            typer.echo(f"Error: {spawned.message}", err=True)
            raise typer.Exit(1)

        deadline = time.monotonic() + wait
        port = 0
        while time.monotonic() < deadline:
            port = bridge.get_backend_port().value or 0
            if port:
                break
            time.sleep(0.1)

        if not port:
            typer.echo(f"Backend did not announce a port within {wait:.1f}s", err=True)
            raise typer.Exit(1)

        healthy = bool(bridge.check_backend_health().value)
        typer.echo(f"Port: {port}")
        typer.echo(f"Healthy: {'yes' if healthy else 'no'}")
        if not healthy:
            raise typer.Exit(1)


@app.command()
def info() -> None:
    """Print host platform information as JSON."""
    typer.echo(json.dumps(get_system_info().to_dict(), indent=2))


if __name__ == "__main__":
    app()
