"""
Tests for android_sdk_layout
----------------------------

Scenarios covered
1. Unsupported tool          → ValueError
2. Canonical tool locations
3. Missing tool / empty root → None
4. ANDROID_SDK_ROOT / ANDROID_HOME hit
5. Default-root hit
6. Nothing found             → None
7. AVD home precedence
"""
from __future__ import annotations

import stat
import sys
from pathlib import Path

import pytest

import android_sdk_layout._android_sdk_layout as layout

_windows_name = layout._windows_name


# ---------------------------------------------------------------- helpers
def _make_dummy_exe(dir_: Path, stem: str) -> Path:
    dir_.mkdir(parents=True, exist_ok=True)
    path = dir_ / _windows_name(stem)
    path.write_text("#!/bin/sh\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        "ANDROID_SDK_ROOT",
        "ANDROID_HOME",
        "ANDROID_AVD_HOME",
        "ANDROID_USER_HOME",
        "ANDROID_EMULATOR_HOME",
    ):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------- tool paths
def test_invalid_tool_raises(tmp_path):
    with pytest.raises(ValueError):
        layout.sdk_tool_path(tmp_path, "zipalign")


def test_canonical_locations(tmp_path):
    assert layout.sdk_tool_path(tmp_path, "sdkmanager") == (
        tmp_path / "cmdline-tools" / "latest" / "bin" / _windows_name("sdkmanager")
    )
    assert layout.sdk_tool_path(tmp_path, "avdmanager").parent == (
        tmp_path / "cmdline-tools" / "latest" / "bin"
    )
    assert layout.sdk_tool_path(tmp_path, "emulator") == (
        tmp_path / "emulator" / _windows_name("emulator")
    )


@pytest.mark.skipif(not sys.platform.startswith("win"), reason="Windows naming")
def test_windows_suffixes():  # pragma: no cover
    assert _windows_name("avdmanager") == "avdmanager.bat"
    assert _windows_name("emulator") == "emulator.exe"


def test_find_sdk_tool_hit(tmp_path):
    dummy = _make_dummy_exe(tmp_path / "cmdline-tools" / "latest" / "bin", "avdmanager")
    assert layout.find_sdk_tool(tmp_path, "avdmanager") == dummy


@pytest.mark.parametrize("root", [None, "", "   "])
def test_find_sdk_tool_unconfigured(root):
    assert layout.find_sdk_tool(root, "avdmanager") is None


def test_find_sdk_tool_missing(tmp_path):
    assert layout.find_sdk_tool(tmp_path, "emulator") is None


# ---------------------------------------------------------------- sdk root
def test_sdk_root_env_hit(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv("ANDROID_SDK_ROOT", str(tmp_path))
    assert layout.find_sdk_root() == tmp_path


def test_android_home_used_when_sdk_root_is_stale(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv("ANDROID_SDK_ROOT", str(tmp_path / "gone"))
    monkeypatch.setenv("ANDROID_HOME", str(tmp_path))
    assert layout.find_sdk_root() == tmp_path


def test_default_root_hit(tmp_path, monkeypatch, clean_env):
    default_sdk = tmp_path / "default"
    default_sdk.mkdir()
    monkeypatch.setattr(layout, "_default_sdk_roots", lambda: [tmp_path / "nope", default_sdk])
    assert layout.find_sdk_root() == default_sdk


def test_sdk_root_not_found(monkeypatch, clean_env):
    monkeypatch.setattr(layout, "_default_sdk_roots", lambda: [])
    assert layout.find_sdk_root() is None


def test_sdk_environment(tmp_path):
    env = layout.sdk_environment(tmp_path)
    assert env == {"ANDROID_HOME": str(tmp_path), "ANDROID_SDK_ROOT": str(tmp_path)}


# ---------------------------------------------------------------- avd home
def test_avd_home_explicit(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv("ANDROID_USER_HOME", str(tmp_path / "user"))
    monkeypatch.setenv("ANDROID_AVD_HOME", str(tmp_path / "avds"))
    assert layout.avd_home() == tmp_path / "avds"


def test_avd_home_user_home(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv("ANDROID_USER_HOME", str(tmp_path))
    assert layout.avd_home() == tmp_path / "avd"


def test_avd_home_default(tmp_path, monkeypatch, clean_env):
    monkeypatch.setattr(layout.Path, "home", classmethod(lambda cls: tmp_path))
    assert layout.avd_home() == tmp_path / ".android" / "avd"
