# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Shared fixtures for unit tests."""

from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch

from device_test_runner.core.configuration import RunConfiguration
from device_test_runner.core.constants import MAX_VIRTUAL_DEVICES_ENV_VAR
from device_test_runner.core.types import LoggingLevel
from tests.unit.fakes import FakeLauncherGenerator, RecordingSink


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: MonkeyPatch) -> None:
    """Keep the environment of the developer out of the tests."""
    monkeypatch.delenv(MAX_VIRTUAL_DEVICES_ENV_VAR, raising=False)


@pytest.fixture
def configuration() -> RunConfiguration:
    return RunConfiguration(logging=LoggingLevel.WARNING)


@pytest.fixture
def launchers() -> FakeLauncherGenerator:
    return FakeLauncherGenerator()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def binary(tmp_path: Path) -> Path:
    path = tmp_path / "Device.Tests.bin"
    path.write_bytes(b"")
    return path
