"""Host platform information reported to the front end."""

from __future__ import annotations

import os
import platform
import subprocess
import sys
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class SystemInfo:
    platform: str
    arch: str
    is_rosetta: bool = False
    is_windows_wsl_shell: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _run(args: list[str]) -> str | None:
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return None
    return result.stdout


def check_is_rosetta() -> bool:
    """Whether this process runs translated under Rosetta on macOS."""
    output = _run(["sysctl", "-n", "sysctl.proc_translated"])
    return output is not None and output.strip() == "1"


def check_is_windows_wsl_shell() -> bool:
    """Whether the shell on Windows is WSL bash."""
    env_shell = os.environ.get("SHELL", "").lower()
    if "wsl" in env_shell or "bash.exe" in env_shell:
        return True

    output = _run(["where", "bash"])
    if not output:
        return False
    first_path = next((line.strip() for line in output.splitlines() if line.strip()), "")
    path_lower = first_path.lower()
    return "wsl" in path_lower or "\\windows\\system32\\bash.exe" in path_lower


def get_system_info() -> SystemInfo:
    name = sys.platform
    return SystemInfo(
        platform=name,
        arch=platform.machine(),
        is_rosetta=check_is_rosetta() if name == "darwin" else False,
        is_windows_wsl_shell=check_is_windows_wsl_shell() if name == "win32" else False,
    )
