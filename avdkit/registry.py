# SPDX-License-Identifier: MIT
"""Thread-safe bookkeeping of running emulator processes, keyed by AVD name."""
from __future__ import annotations

import logging
import subprocess
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class AvdRegistry:
    """
    Map of AVD name to its live process handle.

    Every method takes the same lock, so UI worker threads can start, stop
    and query emulators concurrently. Dead entries are pruned whenever they
    are observed, there is no separate reaper.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._procs: dict[str, subprocess.Popen] = {}

    def __repr__(self) -> str:  # pragma: no cover
        with self._lock:
            return f"<AvdRegistry {sorted(self._procs)!r}>"

    def __len__(self) -> int:
        return len(self.all_running())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_running(name)

    # ---------------------------------------------------------------- writes
    def register(self, name: str, handle: subprocess.Popen) -> None:
        if handle.poll() is not None:
            raise ValueError(f"Refusing to register exited process for {name!r}")
        with self._lock:
            previous = self._procs.get(name)
            self._procs[name] = handle
        if previous is not None and previous is not handle:
            logger.warning("Replaced registry entry for %s (PID %d)", name, previous.pid)

    def unregister(
        self, name: str, handle: Optional[subprocess.Popen] = None
    ) -> Optional[subprocess.Popen]:
        """
        Forget *name* and return the handle it held.

        With *handle*, the entry is removed only while it still holds that
        very process; a newer registration under the same name is left alone.
        """
        with self._lock:
            current = self._procs.get(name)
            if current is None or (handle is not None and current is not handle):
                return None
            return self._procs.pop(name)

    # ---------------------------------------------------------------- reads
    def get(self, name: str) -> Optional[subprocess.Popen]:
        with self._lock:
            return self._procs.get(name)

    def is_running(self, name: str) -> bool:
        with self._lock:
            proc = self._procs.get(name)
            if proc is None:
                return False
            if proc.poll() is None:
                return True
            del self._procs[name]
        logger.debug("Pruned exited emulator %s", name)
        return False

    def all_running(self) -> dict[str, subprocess.Popen]:
        """Snapshot of live entries; exited ones are dropped from the registry."""
        with self._lock:
            dead = [n for n, p in self._procs.items() if p.poll() is not None]
            for name in dead:
                del self._procs[name]
            snapshot = dict(self._procs)
        if dead:
            logger.debug("Pruned exited emulators: %s", ", ".join(dead))
        return snapshot
