# SPDX-License-Identifier: MIT
"""
Secure execution of the Android SDK command-line tools.

* Commands are argument lists, never shell strings
* Environment overrides are merged on top of the inherited environment
* stdout / stderr are drained by two reader threads while the caller waits,
  so a chatty tool can never block on a full pipe
* Every synchronous execution is bounded by a timeout; on expiry the child
  (and its process group on POSIX) is terminated. Background helpers that
  keep the output pipes open past the deadline are killed as well
"""
from __future__ import annotations

###############################################################################
# Standard library
###############################################################################
import contextlib
import itertools
import logging
import os
import shlex
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import IO, Callable, Final, Iterable, Mapping, Optional, Sequence, Union

from avdkit import _logging  # noqa: F401  (installs the package handler)
from avdkit.errors import ProcessStartError, ProcessTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Final[float] = 30 * 60.0
DEFAULT_KILL_GRACE: Final[float] = 5.0
_FORCE_KILL_WAIT: Final[float] = 2.0
_READER_JOIN_TIMEOUT: Final[float] = 5.0

LineCallback = Callable[[str], None]


###############################################################################
# Stdin strategies
###############################################################################
@dataclass(frozen=True, slots=True)
class NoInput:
    """The child gets an empty stdin (immediate EOF)."""


@dataclass(frozen=True, slots=True)
class AnswerOnce:
    """Answer a single prompt, e.g. ``no`` to the custom hardware profile."""

    answer: str


@dataclass(frozen=True, slots=True)
class RepeatLine:
    """
    Write *line* up to *max_times* times.

    Writing stops early once the child has exited or closed its end of the
    pipe, so *max_times* is an upper bound rather than an exact count.
    """

    line: str
    max_times: int

    def __post_init__(self) -> None:
        if self.max_times < 0:
            raise ValueError("max_times must be >= 0")


StdinScript = Union[NoInput, AnswerOnce, RepeatLine]


###############################################################################
# Execution spec & result
###############################################################################
@dataclass(frozen=True, slots=True)
class ExecutionSpec:
    command: tuple[str, ...]
    cwd: Optional[Path] = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    stdin: StdinScript = NoInput()

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("command must not be empty")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        object.__setattr__(self, "command", tuple(str(c) for c in self.command))
        if self.cwd is not None:
            object.__setattr__(self, "cwd", Path(self.cwd))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def executable(self) -> str:
        return self.command[0]

    def command_line(self) -> str:
        return shlex.join(self.command)


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    exit_code: int
    stdout_lines: tuple[str, ...] = ()
    stderr_lines: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.exit_code == 0


###############################################################################
# Stream draining
###############################################################################
class _StreamDrain(threading.Thread):
    """Read one pipe line by line until EOF."""

    def __init__(self, stream: IO[str], name: str, on_line: Optional[LineCallback]) -> None:
        super().__init__(name=name, daemon=True)
        self._stream = stream
        self._on_line = on_line
        self.lines: list[str] = []

    def run(self) -> None:
        try:
            for raw in self._stream:
                line = raw.rstrip("\r\n")
                self.lines.append(line)
                if self._on_line is not None:
                    try:
                        self._on_line(line)
                    except Exception:
                        logger.exception("Line callback failed on %s", self.name)
        except (OSError, ValueError) as exc:
            logger.error("Error reading %s: %s", self.name, exc)
        finally:
            with contextlib.suppress(OSError):
                self._stream.close()


###############################################################################
# Runner
###############################################################################
class ProcessRunner:
    """
    Stateless executor for external tools.

    One instance can be shared by any number of threads; every call spawns
    and tracks its own child.
    """

    def __init__(self, *, kill_grace: float = DEFAULT_KILL_GRACE) -> None:
        self.kill_grace = kill_grace

    # ---------------------------------------------------------------- sync
    def execute(
        self,
        spec: ExecutionSpec,
        *,
        on_stdout: Optional[LineCallback] = None,
        on_stderr: Optional[LineCallback] = None,
    ) -> ExecutionResult:
        """
        Run *spec* to completion and return its exit code and output.

        Raises:
            ProcessStartError: the child could not be spawned.
            ProcessTimeoutError: the child outlived ``spec.timeout``; it has
                been killed and no partial result is returned.
        """
        scripted = not isinstance(spec.stdin, NoInput)
        proc = self._spawn(
            spec,
            stdin=subprocess.PIPE if scripted else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        deadline = time.monotonic() + spec.timeout
        if proc.stdout is None or proc.stderr is None:
            self._signal(proc, graceful=False)
            raise ProcessStartError(f"No output pipes for {spec.executable}")
        out = _StreamDrain(proc.stdout, f"stdout-{proc.pid}", on_stdout)
        err = _StreamDrain(proc.stderr, f"stderr-{proc.pid}", on_stderr)
        readers = (out, err)
        out.start()
        err.start()

        try:
            if scripted:
                _feed_stdin(proc, spec.stdin)
            exit_code = proc.wait(timeout=max(0.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired:
            logger.error("Process timed out after %gs: %s", spec.timeout, spec.command_line())
            self.kill(proc)
            _kill_group(proc.pid)
            _join_all(readers, time.monotonic() + _READER_JOIN_TIMEOUT)
            _close_stdin(proc)
            raise ProcessTimeoutError(spec.command, spec.timeout) from None
        except BaseException:
            # KeyboardInterrupt and friends: never leave the child behind
            self._signal(proc, graceful=False)
            with contextlib.suppress(subprocess.TimeoutExpired):
                proc.wait(timeout=_FORCE_KILL_WAIT)
            _kill_group(proc.pid)
            _join_all(readers, time.monotonic() + _READER_JOIN_TIMEOUT)
            _close_stdin(proc)
            raise

        if not _join_all(readers, deadline):
            # the tool exited but a helper it spawned still holds the pipes
            logger.error(
                "Output still open %gs after start, killing leftovers: %s",
                spec.timeout,
                spec.command_line(),
            )
            _kill_group(proc.pid)
            if not _join_all(readers, time.monotonic() + _READER_JOIN_TIMEOUT):
                logger.warning("Readers for PID %d still running", proc.pid)
            _close_stdin(proc)
            raise ProcessTimeoutError(spec.command, spec.timeout)
        _close_stdin(proc)

        if exit_code != 0:
            logger.warning("Command failed with exit code %d: %s", exit_code, spec.command_line())
        else:
            logger.debug("Command completed successfully")

        return ExecutionResult(exit_code, tuple(out.lines), tuple(err.lines))

    # ---------------------------------------------------------------- async
    def execute_async(self, spec: ExecutionSpec) -> subprocess.Popen[bytes]:
        """
        Spawn *spec* and return immediately.

        Output is discarded so that an undrained pipe can never stall a
        long-running child such as the emulator. ``spec.timeout`` and
        ``spec.stdin`` are ignored.
        """
        proc = self._spawn(
            spec,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            text=False,
        )
        logger.debug("Started %s asynchronously (PID: %d)", spec.executable, proc.pid)
        return proc

    # ---------------------------------------------------------------- kill
    def kill(self, handle: Optional[subprocess.Popen], grace: Optional[float] = None) -> None:
        """
        Terminate *handle* gracefully, then forcefully if needed.

        A no-op for ``None`` or an already exited process.
        """
        if handle is None or handle.poll() is not None:
            return
        grace = self.kill_grace if grace is None else grace

        logger.debug("Terminating process (PID: %d)", handle.pid)
        self._signal(handle, graceful=True)
        try:
            handle.wait(timeout=grace)
            return
        except subprocess.TimeoutExpired:
            logger.warning(
                "Process %d did not terminate gracefully, forcing termination", handle.pid
            )

        self._signal(handle, graceful=False)
        try:
            handle.wait(timeout=_FORCE_KILL_WAIT)
        except subprocess.TimeoutExpired:
            logger.error("Process %d still alive after forced termination", handle.pid)

    # ---------------------------------------------------------------- internals
    def _spawn(
        self,
        spec: ExecutionSpec,
        *,
        stdin: int,
        stdout: int,
        stderr: int,
        text: bool = True,
    ) -> subprocess.Popen:
        cmd = _platform_command(spec.command)
        env = {**os.environ, **spec.env}
        logger.debug("$ %s", shlex.join(cmd))

        kwargs: dict[str, object] = {}
        if text:
            kwargs.update(encoding="utf-8", errors="replace")
        if os.name == "posix":
            # own process group, so kill() reaches helpers the tool forks
            kwargs["start_new_session"] = True
        else:  # pragma: no cover
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

        try:
            return subprocess.Popen(
                cmd,
                cwd=spec.cwd,
                env=env,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                **kwargs,
            )
        except OSError as exc:
            raise ProcessStartError(f"Cannot start {cmd[0]}: {exc}") from exc

    @staticmethod
    def _signal(handle: subprocess.Popen, *, graceful: bool) -> None:
        if handle.poll() is not None:
            return
        try:
            if os.name == "posix" and _leads_own_group(handle.pid):
                os.killpg(handle.pid, signal.SIGTERM if graceful else signal.SIGKILL)
            elif graceful:
                handle.terminate()
            else:
                handle.kill()
        except ProcessLookupError:
            logger.debug("Process %d already gone", handle.pid)


###############################################################################
# Helpers
###############################################################################
def _platform_command(command: Sequence[str]) -> list[str]:
    # On Windows, any on-disk file without .exe/.com gets launched via cmd.exe
    cmd = list(command)
    if sys.platform.startswith("win") and cmd:
        exe_path = Path(cmd[0])
        if exe_path.is_file() and exe_path.suffix.lower() not in {".exe", ".com"}:
            cmd = ["cmd", "/c", *cmd]
    return cmd


def _leads_own_group(pid: int) -> bool:
    try:
        return os.getpgid(pid) == pid
    except ProcessLookupError:
        return False


def _feed_stdin(proc: subprocess.Popen, script: StdinScript) -> None:
    """
    Write the scripted answers and flush.

    stdin is deliberately left open: some launchers (avdmanager.bat) misbehave
    when they see EOF before they are done reading.
    """
    lines: Iterable[str]
    match script:
        case AnswerOnce(answer=answer):
            lines = (answer,)
        case RepeatLine(line=line, max_times=times):
            lines = itertools.repeat(line, times)
        case _:
            return

    stdin = proc.stdin
    if stdin is None:
        logger.warning("Scripted input requested but stdin is not a pipe")
        return
    written = 0
    try:
        for line in lines:
            if proc.poll() is not None:
                break
            stdin.write(line + "\n")
            stdin.flush()
            written += 1
    except BrokenPipeError:
        logger.debug("stdin closed by child after %d line(s)", written)
    except (OSError, ValueError) as exc:
        logger.warning("Failed to provide input to process: %s", exc)


def _close_stdin(proc: subprocess.Popen) -> None:
    if proc.stdin is not None:
        with contextlib.suppress(OSError):
            proc.stdin.close()


def _kill_group(pid: int) -> None:
    """SIGKILL whatever is left of the process group led by *pid*."""
    if os.name != "posix":  # pragma: no cover
        return
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    logger.debug("Killed leftover processes of group %d", pid)


def _join_all(threads: Iterable[threading.Thread], deadline: float) -> bool:
    """Join *threads* until the monotonic *deadline*; True if all finished."""
    done = True
    for t in threads:
        t.join(max(0.0, deadline - time.monotonic()))
        if t.is_alive():
            logger.warning("Reader %s still running", t.name)
            done = False
    return done
