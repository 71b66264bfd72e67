# SPDX-License-Identifier: MIT
"""Naming helpers: AVD name rules, API levels and Android version names."""
from __future__ import annotations

import re
from typing import Final, Optional

from avdkit.errors import InvalidAvdName

UNKNOWN: Final = "Unknown"

_AVD_NAME_RE: Final = re.compile(r"^[A-Za-z0-9_-]+$")
_API_LEVEL_RE: Final = re.compile(r"API level\s+(\d+)")
_NUMBER_RE: Final = re.compile(r"^\d+$")

_VERSION_NAMES: Final[dict[str, str]] = {
    "36": "Android 16",
    "35": "Android 15",
    "34": "Android 14",
    "33": "Android 13",
    "32": "Android 12L",
    "31": "Android 12",
    "30": "Android 11",
    "29": "Android 10",
    "28": "Android 9",
    "27": "Android 8.1",
    "26": "Android 8.0",
    "25": "Android 7.1",
    "24": "Android 7.0",
    "23": "Android 6.0",
    "22": "Android 5.1",
    "21": "Android 5.0",
}


def is_valid_avd_name(name: Optional[str]) -> bool:
    return bool(name) and _AVD_NAME_RE.match(name) is not None


def validate_avd_name(name: Optional[str]) -> str:
    if not is_valid_avd_name(name):
        raise InvalidAvdName(
            f"Invalid AVD name {name!r}: use letters, digits, '_' or '-' only"
        )
    return name  # type: ignore[return-value]


def system_image_id(api_level: str | int, tag: str = "google_apis", abi: str = "x86_64") -> str:
    """``system-images;android-<api>;google_apis;x86_64`` for an API level."""
    return f"system-images;android-{api_level};{tag};{abi}"


def api_level_from_target(target: Optional[str]) -> str:
    """
    Extract the API level from an ``avdmanager`` target string.

    >>> api_level_from_target("Google APIs (API level 34)")
    '34'
    >>> api_level_from_target("Android 14")
    '14'
    """
    if not target:
        return UNKNOWN
    if m := _API_LEVEL_RE.search(target):
        return m[1]
    for part in target.split():
        if _NUMBER_RE.match(part):
            return part
    return UNKNOWN


def android_version_name(api_level: Optional[str]) -> str:
    if not api_level or api_level == UNKNOWN:
        return "Android (Unknown)"
    return _VERSION_NAMES.get(str(api_level), f"Android API {api_level}")


def format_device_name(device: Optional[str]) -> Optional[str]:
    """``pixel_7`` -> ``Pixel 7``."""
    if not device:
        return device
    return " ".join(p[0].upper() + p[1:] for p in device.replace("_", " ").split())
