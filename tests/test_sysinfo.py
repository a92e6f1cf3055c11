"""Tests for mupcore.sysinfo (platform probes)."""

from __future__ import annotations

import pytest

from mupcore import sysinfo
from mupcore.sysinfo import SystemInfo, check_is_rosetta, check_is_windows_wsl_shell


class TestRosetta:
    def test_translated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sysinfo, "_run", lambda args: "1\n")
        assert check_is_rosetta() is True

    def test_native(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sysinfo, "_run", lambda args: "0\n")
        assert check_is_rosetta() is False

    def test_probe_failed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sysinfo, "_run", lambda args: None)
        assert check_is_rosetta() is False


class TestWslShell:
    def test_shell_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "C:\\Windows\\System32\\bash.exe")
        monkeypatch.setattr(sysinfo, "_run", lambda args: None)
        assert check_is_windows_wsl_shell() is True

    def test_where_bash_wsl(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        monkeypatch.setattr(
            sysinfo,
            "_run",
            lambda args: "\r\nC:\\Windows\\System32\\bash.exe\r\nC:\\Git\\bin\\bash.exe\r\n",
        )
        assert check_is_windows_wsl_shell() is True

    def test_where_bash_git(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        monkeypatch.setattr(sysinfo, "_run", lambda args: "C:\\Git\\bin\\bash.exe\r\n")
        assert check_is_windows_wsl_shell() is False

    def test_no_bash(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        monkeypatch.setattr(sysinfo, "_run", lambda args: None)
        assert check_is_windows_wsl_shell() is False


class TestGetSystemInfo:
    def test_linux_skips_probes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[list[str]] = []

        def fake_run(args: list[str]) -> str:
            calls.append(args)
            return "1"

        monkeypatch.setattr(sysinfo.sys, "platform", "linux")
        monkeypatch.setattr(sysinfo, "_run", fake_run)
        info = sysinfo.get_system_info()
        assert info.platform == "linux"
        assert info.is_rosetta is False
        assert info.is_windows_wsl_shell is False
        assert calls == []

    def test_to_dict(self) -> None:
        info = SystemInfo(platform="darwin", arch="arm64", is_rosetta=True)
        assert info.to_dict() == {
            "platform": "darwin",
            "arch": "arm64",
            "is_rosetta": True,
            "is_windows_wsl_shell": False,
        }
