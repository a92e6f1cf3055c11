"""Configuration: Pydantic models for mupcore settings."""

from __future__ import annotations

import os
import shlex
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Upper bound on a single health probe, in seconds.
MAX_HEALTH_TIMEOUT = 2.0


class TerminalConfig(BaseModel):
    """PTY shell session configuration."""

    shell: str | None = Field(
        default=None,
        description="Shell executable. Falls back to $SHELL, then /bin/bash.",
    )
    term: str = Field(default="xterm-256color", description="TERM for the shell")
    cols: int = Field(default=80, ge=1, le=65535)
    rows: int = Field(default=24, ge=1, le=65535)
    read_chunk_size: int = Field(
        default=8192, ge=1, description="Max bytes returned by one read"
    )
    write_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for the PTY to accept buffered input",
    )

    def resolve_shell(self) -> str:
        """Return the shell to launch for new sessions."""
        return self.shell or os.environ.get("SHELL") or "/bin/bash"


class BackendConfig(BaseModel):
    """Backend sidecar configuration."""

    command: list[str] = Field(
        default_factory=lambda: ["mup-server"],
        min_length=1,
        description="Backend executable and arguments",
    )
    autostart: bool = Field(
        default=True, description="Spawn the backend on application startup"
    )
    host: str = Field(default="127.0.0.1")
    health_path: str = Field(default="/health")
    health_timeout: float = Field(default=MAX_HEALTH_TIMEOUT, gt=0)
    rpc_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for forwarded RPC calls"
    )

    @field_validator("health_timeout")
    @classmethod
    def _cap_health_timeout(cls, value: float) -> float:
        return min(value, MAX_HEALTH_TIMEOUT)


class BridgeConfig(BaseModel):
    """Synchronous request boundary configuration."""

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Max seconds a caller waits for one request",
    )


class MupConfig(BaseModel):
    """Top-level mupcore configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> MupConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            MUP_SHELL              - Shell for new terminal sessions
            MUP_TERM               - TERM value exported to shells
            MUP_BACKEND_COMMAND    - Backend command line (shell-quoted)
            MUP_BACKEND_AUTOSTART  - "0"/"false" disables spawning on startup
            MUP_HEALTH_TIMEOUT     - Health probe timeout in seconds (max 2)
            MUP_REQUEST_TIMEOUT    - Bridge request timeout in seconds
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            import json

            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})
        backend = config_data.get("backend", {})
        bridge = config_data.get("bridge", {})

        env_shell = os.environ.get("MUP_SHELL")
        if env_shell:
            terminal["shell"] = env_shell

        env_term = os.environ.get("MUP_TERM")
        if env_term:
            terminal["term"] = env_term

        env_command = os.environ.get("MUP_BACKEND_COMMAND")
        if env_command:
            backend["command"] = shlex.split(env_command)

        env_autostart = os.environ.get("MUP_BACKEND_AUTOSTART")
        if env_autostart:
            backend["autostart"] = env_autostart.lower() not in ("0", "false", "no")

        env_health_timeout = os.environ.get("MUP_HEALTH_TIMEOUT")
        if env_health_timeout:
            backend["health_timeout"] = float(env_health_timeout)

        env_request_timeout = os.environ.get("MUP_REQUEST_TIMEOUT")
        if env_request_timeout:
            bridge["request_timeout"] = float(env_request_timeout)

        if terminal:
            config_data["terminal"] = terminal
        if backend:
            config_data["backend"] = backend
        if bridge:
            config_data["bridge"] = bridge

        return cls.model_validate(config_data)
