# SPDX-License-Identifier: MIT
"""Exception types raised by avdkit."""
from __future__ import annotations


class AndroidToolNotFound(RuntimeError):
    """Raised when an SDK tool is missing from its canonical location."""

    def __init__(self, tool: str, sdk_root: object) -> None:
        super().__init__(f"{tool} not found in SDK: {sdk_root}")
        self.tool = tool
        self.sdk_root = sdk_root


class ProcessStartError(OSError):
    """Raised when the OS refuses to spawn a child process."""


class ProcessTimeoutError(TimeoutError):
    """Raised when a child process outlives its timeout and has been killed."""

    def __init__(self, command: tuple[str, ...], timeout: float) -> None:
        super().__init__(f"Process timed out after {timeout:g}s: {command[0] if command else '?'}")
        self.command = command
        self.timeout = timeout


class BootTimeoutError(TimeoutError):
    """Raised when an AVD fails to report sys.boot_completed within timeout."""


class InvalidAvdName(ValueError):
    """Raised for AVD names outside ``[A-Za-z0-9_-]+``."""
