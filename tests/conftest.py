"""Shared fixtures: stub backend commands and a /bin/sh terminal config."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

from mupcore.config import BackendConfig, TerminalConfig

STUB_BACKEND = Path(__file__).parent / "stub_backend.py"


@pytest.fixture
def stub_command() -> Callable[..., list[str]]:
    """Build a command line that runs the stub backend in a given mode."""

    def build(mode: str, *args: object) -> list[str]:
        return [sys.executable, str(STUB_BACKEND), mode, *(str(a) for a in args)]

    return build


@pytest.fixture
def backend_config(stub_command: Callable[..., list[str]]) -> Callable[..., BackendConfig]:
    def build(mode: str, *args: object) -> BackendConfig:
        return BackendConfig(command=stub_command(mode, *args), autostart=False)

    return build


@pytest.fixture
def terminal_config() -> TerminalConfig:
    return TerminalConfig(shell="/bin/sh", term="dumb")
