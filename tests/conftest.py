# SPDX-License-Identifier: MIT
"""
Shared fixtures: a throw-away SDK tree whose tools are tiny ``#!/bin/sh``
stubs. Every stub appends its argv to ``$AVDKIT_CALLS`` so tests can assert
which commands ran, in which order.
"""
from __future__ import annotations

import stat
import sys
import textwrap
import time
from pathlib import Path
from typing import Callable, List

import pytest

from android_sdk_layout._android_sdk_layout import sdk_tool_path

posix_only = pytest.mark.skipif(
    sys.platform.startswith("win"), reason="stub tools are POSIX shell scripts"
)


# ---------------------------------------------------------------- helpers
def make_tool(sdk: Path, tool: str, body: str) -> Path:
    """
    Write a stub *tool* at its canonical place under *sdk* and mark it +x.

    We really create the file so that Path.is_file() returns True, no mocks.
    """
    path = sdk_tool_path(sdk, tool)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "#!/bin/sh\n"
        'printf \'%s\\n\' "$*" >> "$AVDKIT_CALLS"\n'
        + textwrap.dedent(body)
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


# ---------------------------------------------------------------- fixtures
@pytest.fixture
def sdk(tmp_path) -> Path:
    root = tmp_path / "sdk"
    root.mkdir()
    return root


@pytest.fixture
def calls_file(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "calls.log"
    monkeypatch.setenv("AVDKIT_CALLS", str(path))
    return path


@pytest.fixture
def calls(calls_file) -> Callable[[], List[str]]:
    """Return a reader for the argv lines recorded by the stubs."""
    def read() -> List[str]:
        if not calls_file.exists():
            return []
        return calls_file.read_text().splitlines()
    return read
