from __future__ import annotations
import os, sys
from pathlib import Path
from typing import Optional

# Tools driven by avdkit and their location relative to the SDK root.
_TOOL_DIRS: dict[str, tuple[str, ...]] = {
    "sdkmanager": ("cmdline-tools", "latest", "bin"),
    "avdmanager": ("cmdline-tools", "latest", "bin"),
    "emulator":   ("emulator",),
}

# ---------- Core helpers -----------------------------------------------------
def sdk_tool_path(sdk_root: str | os.PathLike[str], tool: str) -> Path:
    """
    Return the canonical location of *tool* under *sdk_root*.

    The path is returned whether or not the file exists; use
    :func:`find_sdk_tool` to get ``None`` for a missing tool.
    """
    if tool not in _TOOL_DIRS:
        raise ValueError(f"Unsupported tool: {tool}")
    return Path(sdk_root).expanduser().joinpath(*_TOOL_DIRS[tool], _windows_name(tool))


def find_sdk_tool(sdk_root: str | os.PathLike[str] | None, tool: str) -> Optional[Path]:
    """Return the tool path if the SDK root is set and the file exists."""
    if not sdk_root or not str(sdk_root).strip():
        return None
    path = sdk_tool_path(sdk_root, tool)
    return path if path.is_file() else None


def find_sdk_root() -> Optional[Path]:
    """
    Locate an Android SDK installation on any OS.

    Search order (first hit wins):
      1. $ANDROID_SDK_ROOT / $ANDROID_HOME
      2. Typical default SDK locations for the current platform
    Returns None if no directory is found.
    """
    for var in ("ANDROID_SDK_ROOT", "ANDROID_HOME"):
        value = os.getenv(var)
        if value and Path(value).expanduser().is_dir():
            return Path(value).expanduser()

    for candidate in _default_sdk_roots():
        if candidate.is_dir():
            return candidate
    return None


def avd_home() -> Path:
    """
    Directory holding ``<name>.avd`` folders and ``<name>.ini`` files.

    Mirrors the emulator's own lookup: ANDROID_AVD_HOME, then
    ANDROID_USER_HOME/avd, ANDROID_EMULATOR_HOME/avd, then ~/.android/avd.
    """
    explicit = os.getenv("ANDROID_AVD_HOME")
    if explicit:
        return Path(explicit).expanduser()
    for var in ("ANDROID_USER_HOME", "ANDROID_EMULATOR_HOME"):
        value = os.getenv(var)
        if value:
            return Path(value).expanduser() / "avd"
    return Path.home() / ".android" / "avd"


def sdk_environment(sdk_root: str | os.PathLike[str]) -> dict[str, str]:
    """Environment overrides every SDK tool invocation runs with."""
    root = str(Path(sdk_root).expanduser())
    return {"ANDROID_HOME": root, "ANDROID_SDK_ROOT": root}

# ---------- Helpers ----------------------------------------------------------
def _windows_name(tool: str) -> str:
    """Return the executable name for Windows builds."""
    if sys.platform.startswith("win"):
        # sdkmanager and avdmanager are .bat launchers; emulator is an .exe
        return f"{tool}.exe" if tool == "emulator" else f"{tool}.bat"
    return tool

def _default_sdk_roots() -> list[Path]:
    """Return typical SDK install roots for each OS."""
    home = Path.home()
    if sys.platform.startswith("darwin"):   # macOS
        return [
            home / "Library" / "Android" / "sdk",
            home / "Android" / "Sdk",
        ]
    elif sys.platform.startswith("win"):    # Windows
        return [
            Path(os.environ.get("LOCALAPPDATA", "")) /
            "Android" / "Sdk",
            home / "AppData" / "Local" / "Android" / "Sdk",
        ]
    else:                                    # Linux / WSL
        return [
            home / "Android" / "Sdk",
            home / "Android" / "sdk",
            Path("/opt/android-sdk"),
        ]
