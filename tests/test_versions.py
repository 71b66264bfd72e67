from __future__ import annotations

import pytest

from avdkit.errors import InvalidAvdName
from avdkit.versions import (
    UNKNOWN,
    android_version_name,
    api_level_from_target,
    format_device_name,
    is_valid_avd_name,
    system_image_id,
    validate_avd_name,
)


@pytest.mark.parametrize("name", ["Pixel_7_API_34", "foo-bar", "A", "123"])
def test_valid_names(name):
    assert is_valid_avd_name(name)
    assert validate_avd_name(name) == name


@pytest.mark.parametrize("name", [None, "", "with space", "tab\tname", "a.b", "a/b", "ü"])
def test_invalid_names(name):
    assert not is_valid_avd_name(name)
    with pytest.raises(InvalidAvdName):
        validate_avd_name(name)


def test_system_image_id():
    assert system_image_id("34") == "system-images;android-34;google_apis;x86_64"
    assert system_image_id(30, tag="default", abi="arm64-v8a") == (
        "system-images;android-30;default;arm64-v8a"
    )


@pytest.mark.parametrize(
    "target, expected",
    [
        ("Google APIs (API level 34)", "34"),
        ("Android 14 (API level 34)", "34"),
        ("android 33", "33"),
        ("Google APIs (Google Inc.)", UNKNOWN),
        (None, UNKNOWN),
        ("", UNKNOWN),
    ],
)
def test_api_level_from_target(target, expected):
    assert api_level_from_target(target) == expected


def test_android_version_name():
    assert android_version_name("35") == "Android 15"
    assert android_version_name("32") == "Android 12L"
    assert android_version_name("99") == "Android API 99"
    assert android_version_name(UNKNOWN) == "Android (Unknown)"
    assert android_version_name(None) == "Android (Unknown)"


def test_format_device_name():
    assert format_device_name("pixel_7") == "Pixel 7"
    assert format_device_name("pixel") == "Pixel"
    assert format_device_name("pixel__tablet") == "Pixel Tablet"
    assert format_device_name("") == ""
    assert format_device_name(None) is None
