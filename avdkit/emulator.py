# SPDX-License-Identifier: MIT
"""
AVD lifecycle on top of :class:`~avdkit.process.ProcessRunner`.

* `avdmanager` drives create / list / delete / rename
* `emulator -avd <name>` is launched detached and tracked in an
  :class:`~avdkit.registry.AvdRegistry`
* Boot completion is observed through **`adbutils`**
"""
from __future__ import annotations

###############################################################################
# Standard library
###############################################################################
import enum
import logging
import os
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Iterable, Iterator, List, Optional

###############################################################################
# Third-party
###############################################################################
import adbutils  # pip install adbutils

from android_sdk_layout._android_sdk_layout import avd_home, find_sdk_tool, sdk_environment
from avdkit.errors import AndroidToolNotFound, BootTimeoutError, ProcessStartError
from avdkit.process import AnswerOnce, ExecutionResult, ExecutionSpec, ProcessRunner
from avdkit.registry import AvdRegistry
from avdkit.versions import (
    android_version_name,
    api_level_from_target,
    system_image_id,
    validate_avd_name,
)

logger = logging.getLogger(__name__)

CREATE_TIMEOUT: Final[float] = 10 * 60.0
LIST_TIMEOUT: Final[float] = 5 * 60.0
DELETE_TIMEOUT: Final[float] = 5 * 60.0
BOOT_POLL_INTERVAL: Final[float] = 5.0

# avdmanager asks "Do you wish to create a custom hardware profile? [no]"
_NO_CUSTOM_HARDWARE: Final = AnswerOnce("no")


###############################################################################
# Models
###############################################################################
@dataclass(frozen=True, slots=True)
class AvdRecord:
    name: str
    target: Optional[str] = None
    path: Optional[str] = None

    @property
    def api_level(self) -> str:
        return api_level_from_target(self.target)

    @property
    def android_version(self) -> str:
        return android_version_name(self.api_level)


class AvdState(enum.Enum):
    ABSENT = "absent"      # no <name>.avd directory
    STOPPED = "stopped"    # directory exists, nothing registered
    RUNNING = "running"    # live registry entry


def _adb_client() -> adbutils.AdbClient:
    return adbutils.AdbClient(host="127.0.0.1", port=5037)


###############################################################################
# Manager
###############################################################################
class EmulatorManager:
    """Create, list, start, stop and delete AVDs of one SDK installation."""

    def __init__(
        self,
        sdk_path: str | os.PathLike[str] | None,
        *,
        runner: ProcessRunner | None = None,
        registry: AvdRegistry | None = None,
        avd_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self.sdk_path = Path(sdk_path).expanduser() if sdk_path and str(sdk_path).strip() else None
        self._runner = runner or ProcessRunner()
        self._registry = registry if registry is not None else AvdRegistry()
        self._avd_dir = Path(avd_dir) if avd_dir else None
        self._start_lock = threading.Lock()

    def __repr__(self) -> str:  # pragma: no cover
        return f"<EmulatorManager sdk={str(self.sdk_path)!r}>"

    def __enter__(self) -> "EmulatorManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_all_emulators()

    @property
    def registry(self) -> AvdRegistry:
        return self._registry

    @property
    def avd_dir(self) -> Path:
        return self._avd_dir or avd_home()

    # ---------------------------------------------------------------- CRUD
    def create_avd(self, name: str, api_level: str | int, device_type: str) -> bool:
        """
        Create *name* from the google_apis x86_64 image of *api_level*.

        Returns the tool's verdict; raises only when ``avdmanager`` is missing,
        the name is invalid, or the process cannot be run.
        """
        validate_avd_name(name)
        logger.info("Creating AVD: name=%s, api=%s, device=%s", name, api_level, device_type)
        avdmanager = self._require_tool("avdmanager")

        result = self._runner.execute(
            self._spec(
                avdmanager,
                "create", "avd",
                "-n", name,
                "-k", system_image_id(api_level),
                "-d", device_type,
                timeout=CREATE_TIMEOUT,
                stdin=_NO_CUSTOM_HARDWARE,
            )
        )
        return self._report(result, f"AVD created successfully: {name}", f"Failed to create AVD: {name}")

    def list_avds(self) -> List[AvdRecord]:
        """Best-effort listing: an unconfigured SDK yields ``[]``."""
        avdmanager = find_sdk_tool(self.sdk_path, "avdmanager")
        if avdmanager is None:
            logger.warning("avdmanager not found, returning empty list")
            return []

        result = self._runner.execute(self._spec(avdmanager, "list", "avd", timeout=LIST_TIMEOUT))
        if not result.success:
            logger.error("Listing AVDs failed: %s", result.stderr_lines)
        avds = list(_parse_avd_list(result.stdout_lines))
        logger.debug("Found %d AVDs", len(avds))
        return avds

    def get_avd(self, name: str) -> AvdRecord | None:
        return next((a for a in self.list_avds() if a.name == name), None)

    def delete_avd(self, name: str) -> bool:
        logger.info("Deleting AVD: %s", name)
        self.stop_emulator(name)

        avdmanager = self._require_tool("avdmanager")
        result = self._runner.execute(
            self._spec(avdmanager, "delete", "avd", "-n", name, timeout=DELETE_TIMEOUT)
        )
        return self._report(result, f"AVD deleted successfully: {name}", f"Failed to delete AVD: {name}")

    def rename_avd(self, name: str, new_name: str) -> bool:
        validate_avd_name(new_name)
        if self.is_running(name):
            raise RuntimeError(f"Cannot rename {name!r} while its emulator is running")
        logger.info("Renaming AVD: %s -> %s", name, new_name)

        avdmanager = self._require_tool("avdmanager")
        result = self._runner.execute(
            self._spec(avdmanager, "move", "avd", "-n", name, "-r", new_name, timeout=DELETE_TIMEOUT)
        )
        return self._report(result, f"AVD renamed: {name} -> {new_name}", f"Failed to rename AVD: {name}")

    # ---------------------------------------------------------------- runtime control
    def start_emulator(self, name: str) -> subprocess.Popen:
        """
        Launch ``emulator -avd <name>`` without waiting for boot.

        Starting an AVD that is already running returns the existing handle.
        """
        validate_avd_name(name)
        with self._start_lock:
            existing = self._registry.get(name)
            if existing is not None:
                if existing.poll() is None:
                    logger.warning("Emulator %s is already running", name)
                    return existing
                self._registry.unregister(name, existing)

            emulator = self._require_tool("emulator")
            logger.info("Starting emulator: %s", name)
            proc = self._runner.execute_async(self._spec(emulator, "-avd", name))
            try:
                self._registry.register(name, proc)
            except ValueError as exc:
                raise ProcessStartError(
                    f"Emulator for {name} exited immediately (code {proc.returncode})"
                ) from exc

        logger.info("Emulator %s started (PID: %d)", name, proc.pid)
        return proc

    def stop_emulator(self, name: str) -> bool:
        """Kill and forget the emulator of *name*; ``False`` if none was running."""
        proc = self._registry.get(name)
        if proc is None:
            logger.debug("No running emulator found for: %s", name)
            return False

        logger.info("Stopping emulator: %s", name)
        try:
            self._runner.kill(proc)
        finally:
            self._registry.unregister(name, proc)
        logger.info("Emulator %s stopped", name)
        return True

    def stop_all_emulators(self) -> int:
        names = list(self._registry.all_running())
        if names:
            logger.info("Stopping all running emulators: %s", ", ".join(names))
        return sum(self.stop_emulator(n) for n in names)

    def running_emulators(self) -> dict[str, subprocess.Popen]:
        return self._registry.all_running()

    def is_running(self, name: str) -> bool:
        return self._registry.is_running(name)

    def state(self, name: str) -> AvdState:
        if self._registry.is_running(name):
            return AvdState.RUNNING
        if (self.avd_dir / f"{name}.avd").is_dir():
            return AvdState.STOPPED
        return AvdState.ABSENT

    # ---------------------------------------------------------------- boot helpers
    def wait_boot_completed(self, name: str, timeout: float = 180) -> str:
        """
        Block until the emulator running *name* reports ``sys.boot_completed``.

        Returns the adb serial of the booted emulator.
        """
        deadline = time.time() + timeout
        client = _adb_client()

        while True:
            proc = self._registry.get(name)
            if proc is not None and proc.poll() is not None:
                self._registry.unregister(name, proc)
                raise RuntimeError(f"Emulator {name!r} exited with code {proc.returncode} before boot")

            serial = _find_emulator_serial(client, name)
            if serial is not None:
                try:
                    booted = client.device(serial).shell(["getprop", "sys.boot_completed"]).strip() == "1"
                except adbutils.AdbError as exc:
                    logger.debug("getprop on %s failed: %s", serial, exc)
                    booted = False
                if booted:
                    logger.info("Boot completed for %s (%s)", name, serial)
                    return serial

            if time.time() >= deadline:
                break
            time.sleep(BOOT_POLL_INTERVAL)

        raise BootTimeoutError(f"AVD {name} failed to boot within {timeout}s")

    # ---------------------------------------------------------------- internals
    def _require_tool(self, tool: str) -> Path:
        path = find_sdk_tool(self.sdk_path, tool)
        if path is None:
            raise AndroidToolNotFound(tool, self.sdk_path)
        return path

    def _spec(self, tool: Path, *args: str, **kwargs) -> ExecutionSpec:
        if self.sdk_path is None:
            raise AndroidToolNotFound(tool.name, None)
        return ExecutionSpec(
            command=(str(tool), *args),
            cwd=self.sdk_path,
            env=sdk_environment(self.sdk_path),
            **kwargs,
        )

    @staticmethod
    def _report(result: ExecutionResult, ok: str, failed: str) -> bool:
        if result.success:
            logger.info(ok)
        else:
            logger.error(failed)
            logger.error("Errors: %s", "\n".join(result.stderr_lines) or "(no stderr)")
        return result.success


def _find_emulator_serial(client: adbutils.AdbClient, name: str) -> Optional[str]:
    for info in client.list():
        if not info.serial.startswith("emulator-"):
            continue
        try:
            dev = client.device(info.serial)
            avd_name = dev.shell(["getprop", "ro.boot.qemu.avd_name"]).strip()
            if not avd_name:  # emulators older than API 30
                avd_name = dev.shell(["getprop", "ro.kernel.qemu.avd_name"]).strip()
        except adbutils.AdbError as exc:
            logger.debug("Cannot query %s: %s", info.serial, exc)
            continue
        if avd_name == name:
            return info.serial
    return None


###############################################################################
# Internal parser for `avdmanager list avd`
###############################################################################
_AVD_SECTION: Final = re.compile(r"^----+")
_BROKEN_AVDS: Final = "The following Android Virtual Devices could not be loaded"


def _record(fields: dict[str, str]) -> AvdRecord | None:
    if not fields:
        return None
    if not fields.get("name"):
        logger.debug("Dropping AVD stanza without a name: %s", fields)
        return None
    return AvdRecord(fields["name"], fields.get("target"), fields.get("path"))


def _parse_avd_list(lines: Iterable[str]) -> Iterator[AvdRecord]:
    """
    Parse the ``Name:`` / ``Target:`` / ``Path:`` stanzas of ``avdmanager list avd``.

    A stanza ends at a ``----`` separator, at the next ``Name:`` line, when
    one of its fields repeats, or at end of input. Newer tools print
    ``Path:`` before ``Target:``, so field order is not relied upon. AVDs listed under the "could not be loaded" trailer are
    skipped.
    """
    current: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if line.startswith(_BROKEN_AVDS):
            break
        if _AVD_SECTION.match(line):
            if rec := _record(current):
                yield rec
            current = {}
            continue
        if ":" not in line:
            continue

        key, value = (s.strip() for s in line.split(":", 1))
        match key.upper():
            case "NAME":
                if rec := _record(current):
                    yield rec
                current = {"name": value}
            case "TARGET" | "PATH" as field_name:
                attr = field_name.lower()
                if attr in current:  # repeated field: previous stanza is over
                    if rec := _record(current):
                        yield rec
                    current = {}
                current[attr] = value
    if rec := _record(current):
        yield rec
