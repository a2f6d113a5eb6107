# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for loading the run configuration."""

from pathlib import Path

import pytest

from device_test_runner.core.configuration import (
    ConfigurationError,
    RunConfiguration,
    load_deployment_configuration,
    load_run_configuration,
    parse_run_configuration,
)
from device_test_runner.core.types import LoggingLevel


class TestLoadRunConfiguration:
    def test_all_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "run.yaml"
        path.write_text(
            "allow_real_hardware: false\n"
            "allow_serial_ports: [COM3, COM4]\n"
            "exclude_serial_ports: COM1\n"
            "max_virtual_devices: 4\n"
            "virtual_device_timeout: 120\n"
            "logging: detailed\n"
            "virtual_engine_path: engine/run\n"
            "deployment_configuration:\n"
            "  COM3: deployment/com3.yaml\n"
        )

        config = load_run_configuration(path)

        assert not config.allow_real_hardware
        assert config.allow_serial_ports == ["COM3", "COM4"]
        assert config.exclude_serial_ports == ["COM1"]
        assert config.max_virtual_devices == 4
        assert config.virtual_device_timeout == 120.0
        assert config.real_hardware_timeout is None
        assert config.logging == LoggingLevel.DETAILED
        assert config.virtual_engine_path == tmp_path / "engine" / "run"
        assert config.deployment_configuration_path("COM3") == tmp_path / "deployment" / "com3.yaml"
        assert config.deployment_configuration_path("COM4") is None

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "run.yaml"
        path.write_text("")

        assert load_run_configuration(path) == RunConfiguration()

    def test_unreadable(self, tmp_path: Path) -> None:
        path = tmp_path / "run.yaml"
        path.write_text("allow_serial_ports: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Cannot read run configuration"):
            load_run_configuration(path)

    @pytest.mark.parametrize(
        "raw",
        [
            {"max_virtual_devices": -1},
            {"virtual_device_timeout": 0},
            {"real_hardware_timeout": "soon"},
            {"logging": "chatty"},
            {"allow_serial_ports": {"COM3": True}},
            {"deployment_configuration": ["COM3"]},
            ["not", "a", "mapping"],
        ],
    )
    def test_invalid(self, raw: object, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            parse_run_configuration(raw, tmp_path)


class TestSerialPortFilter:
    def test_no_lists(self) -> None:
        assert not RunConfiguration().is_serial_port_excluded("COM3")

    def test_exclude_list(self) -> None:
        config = RunConfiguration(exclude_serial_ports=["COM3"])

        assert config.is_serial_port_excluded("COM3")
        assert not config.is_serial_port_excluded("COM4")

    def test_allow_list_wins_over_exclude_list(self) -> None:
        config = RunConfiguration(allow_serial_ports=["COM3", "COM4"], exclude_serial_ports=["COM4", "COM5"])

        assert not config.is_serial_port_excluded("COM3")
        assert not config.is_serial_port_excluded("COM4")
        assert config.is_serial_port_excluded("COM5")


class TestDeploymentConfiguration:
    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "com3.yaml"
        path.write_text("wifi_ssid: lab\n42: answer\n")

        assert load_deployment_configuration(path) == {"wifi_ssid": "lab", "42": "answer"}

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "com3.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_deployment_configuration(path)
