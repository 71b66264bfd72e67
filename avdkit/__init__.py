# SPDX-License-Identifier: MIT
"""
avdkit
======

Manage a local Android SDK and the AVDs built from it by driving
``sdkmanager``, ``avdmanager`` and ``emulator`` as child processes.

Usage
-----
>>> from avdkit import EmulatorManager, SdkInstaller
>>> mgr = EmulatorManager("~/Android/Sdk")
>>> mgr.create_avd("Pixel_API_34", "34", "pixel_7")
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Re-export public API
# ---------------------------------------------------------------------------
from .errors import (
    AndroidToolNotFound,
    BootTimeoutError,
    InvalidAvdName,
    ProcessStartError,
    ProcessTimeoutError,
)
from .process import (
    AnswerOnce,
    ExecutionResult,
    ExecutionSpec,
    NoInput,
    ProcessRunner,
    RepeatLine,
)
from .registry import AvdRegistry
from .emulator import AvdRecord, AvdState, EmulatorManager
from .installer import (
    DEFAULT_COMPONENTS,
    ComponentResult,
    InstallReport,
    SdkInstaller,
    is_api_level_installed,
)
from .versions import android_version_name, is_valid_avd_name

__all__: list[str] = [
    # process layer
    "ExecutionSpec",
    "ExecutionResult",
    "NoInput",
    "AnswerOnce",
    "RepeatLine",
    "ProcessRunner",
    # emulators
    "AvdRegistry",
    "AvdRecord",
    "AvdState",
    "EmulatorManager",
    # sdk
    "SdkInstaller",
    "InstallReport",
    "ComponentResult",
    "DEFAULT_COMPONENTS",
    "is_api_level_installed",
    # naming
    "android_version_name",
    "is_valid_avd_name",
    # exceptions
    "AndroidToolNotFound",
    "BootTimeoutError",
    "InvalidAvdName",
    "ProcessStartError",
    "ProcessTimeoutError",
]

# ---------------------------------------------------------------------------
# Optional: version & logging niceties
# ---------------------------------------------------------------------------
from importlib.metadata import version, PackageNotFoundError

try:
    __version__: str = version(__name__)
except PackageNotFoundError:  # running from a checkout
    __version__ = "0.0.0.dev0"

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
