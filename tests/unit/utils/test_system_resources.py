# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Unit tests for sizing the virtual device pool."""

from unittest.mock import patch

import pytest

from device_test_runner.core.constants import MAX_VIRTUAL_DEVICES_ENV_VAR
from device_test_runner.utils.system_resources import SystemResourceCalculator


class TestVirtualDeviceCapacity:
    def test_defaults_to_logical_processors(self) -> None:
        with patch("device_test_runner.utils.system_resources.psutil.cpu_count", return_value=12):
            assert SystemResourceCalculator.calculate_virtual_device_capacity() == 12

    def test_configured_value(self) -> None:
        assert SystemResourceCalculator.calculate_virtual_device_capacity(3) == 3

    def test_env_var_overrides_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MAX_VIRTUAL_DEVICES_ENV_VAR, "42")

        assert SystemResourceCalculator.calculate_virtual_device_capacity(3) == 42

    @pytest.mark.parametrize("value", ["not_a_number", "0", "-2"])
    def test_invalid_env_var_falls_back(
        self, value: str, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv(MAX_VIRTUAL_DEVICES_ENV_VAR, value)

        assert SystemResourceCalculator.calculate_virtual_device_capacity(3) == 3
        assert f"Invalid {MAX_VIRTUAL_DEVICES_ENV_VAR} value" in caplog.text

    def test_cpu_count_unknown(self) -> None:
        with (
            patch("device_test_runner.utils.system_resources.psutil.cpu_count", return_value=None),
            patch("device_test_runner.utils.system_resources.os.cpu_count", return_value=None),
        ):
            assert SystemResourceCalculator.logical_processors() == 1
