"""Tests for mupcore.config (MupConfig and its sections)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from mupcore.config import BackendConfig, MupConfig, TerminalConfig

_ENV_VARS = (
    "MUP_SHELL",
    "MUP_TERM",
    "MUP_BACKEND_COMMAND",
    "MUP_BACKEND_AUTOSTART",
    "MUP_HEALTH_TIMEOUT",
    "MUP_REQUEST_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep load_dotenv() from picking up a stray .env
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_terminal_defaults(self) -> None:
        config = MupConfig()
        assert config.terminal.cols == 80
        assert config.terminal.rows == 24
        assert config.terminal.read_chunk_size == 8192

    def test_backend_defaults(self) -> None:
        config = MupConfig()
        assert config.backend.command == ["mup-server"]
        assert config.backend.health_path == "/health"
        assert config.backend.health_timeout == 2.0
        assert config.backend.host == "127.0.0.1"
        assert config.backend.autostart is True

    def test_health_timeout_capped(self) -> None:
        assert BackendConfig(health_timeout=10).health_timeout == 2.0
        assert BackendConfig(health_timeout=0.5).health_timeout == 0.5

    def test_invalid_geometry_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TerminalConfig(cols=0)

    def test_empty_backend_command_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BackendConfig(command=[])


class TestResolveShell:
    def test_explicit_shell(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "/bin/zsh")
        assert TerminalConfig(shell="/bin/sh").resolve_shell() == "/bin/sh"

    def test_shell_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "/bin/zsh")
        assert TerminalConfig().resolve_shell() == "/bin/zsh"

    def test_fallback_shell(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        assert TerminalConfig().resolve_shell() == "/bin/bash"


class TestLoad:
    def test_load_without_file(self) -> None:
        config = MupConfig.load(None)
        assert config.backend.command == ["mup-server"]

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = MupConfig.load(str(tmp_path / "nope.json"))
        assert config.terminal.cols == 80

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "mup.json"
        path.write_text(
            json.dumps(
                {
                    "terminal": {"shell": "/bin/sh", "cols": 100},
                    "backend": {"command": ["node", "server.js"], "autostart": False},
                }
            )
        )
        config = MupConfig.load(str(path))
        assert config.terminal.shell == "/bin/sh"
        assert config.terminal.cols == 100
        assert config.backend.command == ["node", "server.js"]
        assert config.backend.autostart is False

    def test_env_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "mup.json"
        path.write_text(json.dumps({"backend": {"command": ["from-file"]}}))
        monkeypatch.setenv("MUP_BACKEND_COMMAND", "bun run 'server dir/main.ts'")
        config = MupConfig.load(str(path))
        assert config.backend.command == ["bun", "run", "server dir/main.ts"]

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MUP_SHELL", "/bin/dash")
        monkeypatch.setenv("MUP_TERM", "vt100")
        monkeypatch.setenv("MUP_BACKEND_AUTOSTART", "false")
        monkeypatch.setenv("MUP_HEALTH_TIMEOUT", "1.5")
        monkeypatch.setenv("MUP_REQUEST_TIMEOUT", "12")
        config = MupConfig.load(None)
        assert config.terminal.shell == "/bin/dash"
        assert config.terminal.term == "vt100"
        assert config.backend.autostart is False
        assert config.backend.health_timeout == 1.5
        assert config.bridge.request_timeout == 12.0

    def test_env_health_timeout_still_capped(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MUP_HEALTH_TIMEOUT", "30")
        assert MupConfig.load(None).backend.health_timeout == 2.0
