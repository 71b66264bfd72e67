# SPDX-License-Identifier: MIT
"""
Batch installation of SDK packages through ``sdkmanager``.

Components are installed one by one; a failing component is recorded and
the batch carries on, so a user who only needs some of the requested images
still gets them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Final, Optional, Sequence

from android_sdk_layout._android_sdk_layout import find_sdk_tool, sdk_environment
from avdkit.errors import AndroidToolNotFound, ProcessTimeoutError
from avdkit.process import ExecutionResult, ExecutionSpec, ProcessRunner, RepeatLine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Upper bound of "y" answers fed to `sdkmanager --licenses`; feeding stops as
# soon as the tool exits.
DEFAULT_LICENSE_ANSWERS: Final = 20
LICENSE_TIMEOUT: Final[float] = 10 * 60.0
COMPONENT_TIMEOUT: Final[float] = 30 * 60.0

DEFAULT_COMPONENTS: Final[tuple[str, ...]] = (
    "platform-tools",
    "platforms;android-30",
    "platforms;android-31",
    "platforms;android-32",
    "platforms;android-33",
    "platforms;android-34",
    "platforms;android-35",
    "platforms;android-36",
    "system-images;android-30;google_apis;x86_64",
    "system-images;android-31;google_apis;x86_64",
    "system-images;android-32;google_apis;x86_64",
    "system-images;android-33;google_apis;x86_64",
    "system-images;android-34;google_apis;x86_64",
    "system-images;android-35;google_apis;x86_64",
    "system-images;android-36;google_apis;x86_64",
    "emulator",
    "build-tools;35.0.0",
)


@dataclass(frozen=True, slots=True)
class ComponentResult:
    component: str
    exit_code: Optional[int]  # None when the step timed out
    stderr_lines: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True)
class InstallReport:
    licenses_accepted: bool = False
    results: list[ComponentResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [r.component for r in self.results if r.success]

    @property
    def failed(self) -> list[str]:
        return [r.component for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        return not self.failed


class SdkInstaller:
    def __init__(
        self,
        runner: ProcessRunner | None = None,
        *,
        license_answers: int = DEFAULT_LICENSE_ANSWERS,
        component_timeout: float = COMPONENT_TIMEOUT,
        license_timeout: float = LICENSE_TIMEOUT,
    ) -> None:
        self._runner = runner or ProcessRunner()
        self.license_answers = license_answers
        self.component_timeout = component_timeout
        self.license_timeout = license_timeout

    def install_components(
        self,
        sdk_path: str | os.PathLike[str],
        components: Sequence[str],
        progress_callback: ProgressCallback | None = None,
        *,
        progress_range: tuple[int, int] = (0, 100),
    ) -> InstallReport:
        """
        Accept licenses, then install *components* in order.

        *progress_callback* receives ``(percent, message)`` once before the
        license step and once after every component; percentages are spread
        over *progress_range* and the last call reports its upper end.

        Raises:
            AndroidToolNotFound: ``sdkmanager`` is not installed under
                ``<sdk>/cmdline-tools/latest/bin``.
        """
        sdk_path = Path(sdk_path).expanduser()
        sdkmanager = self._require_sdkmanager(sdk_path)
        low, high = progress_range
        if not 0 <= low <= high <= 100:
            raise ValueError(f"Invalid progress range: {progress_range}")

        components = list(components)
        logger.info("Installing %d SDK component(s) into %s", len(components), sdk_path)
        report = InstallReport()

        _notify(progress_callback, low, "Accepting SDK licenses...")
        report.licenses_accepted = self._accept_licenses(sdk_path, sdkmanager)

        total = len(components)
        for index, component in enumerate(components, start=1):
            outcome = self._install_one(sdk_path, sdkmanager, component)
            report.results.append(outcome)
            _notify(
                progress_callback,
                low + (high - low) * index // total,
                f"{'Installed' if outcome.success else 'Failed to install'} {component} ({index}/{total})",
            )

        _notify(progress_callback, high, "SDK components installation completed")
        if report.failed:
            logger.warning("Failed components: %s", ", ".join(report.failed))
        logger.info(
            "SDK components installation completed (%d/%d succeeded)",
            len(report.succeeded), total,
        )
        return report

    def install_component(self, sdk_path: str | os.PathLike[str], component: str) -> bool:
        """Install a single package on demand, without touching licenses."""
        sdk_path = Path(sdk_path).expanduser()
        sdkmanager = self._require_sdkmanager(sdk_path)
        return self._install_one(sdk_path, sdkmanager, component).success

    # ---------------------------------------------------------------- internals
    def _accept_licenses(self, sdk_path: Path, sdkmanager: Path) -> bool:
        logger.info("Accepting SDK licenses...")
        spec = ExecutionSpec(
            command=(str(sdkmanager), "--licenses"),
            cwd=sdk_path,
            env=sdk_environment(sdk_path),
            timeout=self.license_timeout,
            stdin=RepeatLine("y", self.license_answers),
        )
        try:
            result = self._runner.execute(spec)
        except ProcessTimeoutError as exc:
            logger.warning("License acceptance timed out (%s), continuing anyway", exc)
            return False
        if not result.success:
            logger.warning("License acceptance may have failed, continuing anyway")
        return result.success

    def _install_one(self, sdk_path: Path, sdkmanager: Path, component: str) -> ComponentResult:
        logger.info("Installing component: %s", component)
        spec = ExecutionSpec(
            command=(str(sdkmanager), component),
            cwd=sdk_path,
            env=sdk_environment(sdk_path),
            timeout=self.component_timeout,
        )
        try:
            result: ExecutionResult = self._runner.execute(
                spec, on_stdout=lambda line: logger.debug("[sdkmanager] %s", line)
            )
        except ProcessTimeoutError as exc:
            logger.error("Failed to install component: %s (%s)", component, exc)
            return ComponentResult(component, None, (str(exc),))

        if result.success:
            logger.info("Successfully installed: %s", component)
        else:
            logger.error("Failed to install component: %s", component)
            logger.error("Errors: %s", "\n".join(result.stderr_lines) or "(no stderr)")
        return ComponentResult(component, result.exit_code, result.stderr_lines)

    @staticmethod
    def _require_sdkmanager(sdk_path: Path) -> Path:
        sdkmanager = find_sdk_tool(sdk_path, "sdkmanager")
        if sdkmanager is None:
            raise AndroidToolNotFound("sdkmanager", sdk_path)
        return sdkmanager


def is_api_level_installed(sdk_path: str | os.PathLike[str], api_level: str | int) -> bool:
    """True when both the platform and its google_apis x86_64 system image exist."""
    root = Path(sdk_path).expanduser()
    platform = root / "platforms" / f"android-{api_level}"
    image = root / "system-images" / f"android-{api_level}" / "google_apis" / "x86_64"
    logger.debug(
        "API %s - Platform: %s, System Image: %s", api_level, platform.exists(), image.exists()
    )
    return platform.is_dir() and image.is_dir()


def _notify(callback: ProgressCallback | None, percent: int, message: str) -> None:
    if callback is not None:
        callback(percent, message)
