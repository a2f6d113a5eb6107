# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Run configuration for device test execution.

The configuration is read from a YAML file:

    allow_real_hardware: true
    allow_serial_ports: [COM3, COM4]     # empty: all ports
    exclude_serial_ports: [COM1]
    max_virtual_devices: 0               # 0: number of logical processors
    virtual_device_timeout: 120          # seconds, omit for no limit
    real_hardware_timeout: 300
    logging: verbose                     # none, detailed, verbose, warning, error
    virtual_engine_path: /opt/engine/run-engine
    engine_override_path: /opt/engine/custom-build
    deployment_configuration:
      COM3: deployment/com3.yaml         # key/value pairs for tests on COM3

Relative paths are resolved against the directory of the configuration file.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from device_test_runner.core.constants import (
    DEFAULT_REAL_HARDWARE_TIMEOUT,
    DEFAULT_VIRTUAL_DEVICE_TIMEOUT,
)
from device_test_runner.core.types import LoggingLevel

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when a run configuration or deployment configuration is invalid."""


@dataclass
class RunConfiguration:
    """Settings that control where and how tests are executed."""

    allow_real_hardware: bool = True
    allow_serial_ports: list[str] = field(default_factory=list)
    exclude_serial_ports: list[str] = field(default_factory=list)
    max_virtual_devices: int = 0
    virtual_device_timeout: float | None = DEFAULT_VIRTUAL_DEVICE_TIMEOUT
    real_hardware_timeout: float | None = DEFAULT_REAL_HARDWARE_TIMEOUT
    logging: LoggingLevel = LoggingLevel.WARNING
    virtual_engine_path: Path | None = None
    engine_override_path: Path | None = None
    deployment_configuration: dict[str, Path] = field(default_factory=dict)

    def is_serial_port_excluded(self, serial_port: str) -> bool:
        """Check whether tests may not be run on the device at ``serial_port``.

        A port on the allow list is never excluded, also when it is on the
        exclude list. Ports missing from the allow list are not discovered
        in the first place.

        Args:
            serial_port: Serial port the device is connected to

        Returns:
            True if the port is excluded and not explicitly allowed
        """
        return serial_port in self.exclude_serial_ports and serial_port not in self.allow_serial_ports

    def deployment_configuration_path(self, serial_port: str) -> Path | None:
        return self.deployment_configuration.get(serial_port)


def _optional_timeout(raw: dict[str, Any], key: str, default: float | None) -> float | None:
    if key not in raw:
        return default
    value = raw[key]
    if value is None:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number of seconds, not '{value}'") from None
    if timeout <= 0:
        raise ConfigurationError(f"'{key}' must be larger than 0, but is {value}")
    return timeout


def _string_list(raw: dict[str, Any], key: str) -> list[str]:
    value = raw.get(key) or []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"'{key}' must be a list of serial ports")
    return [str(v) for v in value]


def _resolve(base_dir: Path, value: Any) -> Path:
    path = Path(str(value))
    return path if path.is_absolute() else base_dir / path


def parse_run_configuration(raw: dict[str, Any] | None, base_dir: Path) -> RunConfiguration:
    """Build a RunConfiguration from the parsed YAML mapping.

    Args:
        raw: Parsed YAML content, None for an empty file
        base_dir: Directory that relative paths are resolved against

    Raises:
        ConfigurationError: If a setting has an invalid value
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigurationError("The run configuration must be a mapping")

    max_virtual_devices = raw.get("max_virtual_devices", 0)
    if not isinstance(max_virtual_devices, int) or max_virtual_devices < 0:
        raise ConfigurationError(
            f"'max_virtual_devices' must be 0 or larger, but is {max_virtual_devices}"
        )

    try:
        logging_level = LoggingLevel.parse(raw.get("logging", LoggingLevel.WARNING))
    except ValueError as e:
        raise ConfigurationError(str(e)) from None

    deployment = raw.get("deployment_configuration") or {}
    if not isinstance(deployment, dict):
        raise ConfigurationError(
            "'deployment_configuration' must map serial ports to configuration files"
        )

    config = RunConfiguration(
        allow_real_hardware=bool(raw.get("allow_real_hardware", True)),
        allow_serial_ports=_string_list(raw, "allow_serial_ports"),
        exclude_serial_ports=_string_list(raw, "exclude_serial_ports"),
        max_virtual_devices=max_virtual_devices,
        virtual_device_timeout=_optional_timeout(
            raw, "virtual_device_timeout", DEFAULT_VIRTUAL_DEVICE_TIMEOUT
        ),
        real_hardware_timeout=_optional_timeout(
            raw, "real_hardware_timeout", DEFAULT_REAL_HARDWARE_TIMEOUT
        ),
        logging=logging_level,
        virtual_engine_path=(
            _resolve(base_dir, raw["virtual_engine_path"])
            if raw.get("virtual_engine_path")
            else None
        ),
        engine_override_path=(
            _resolve(base_dir, raw["engine_override_path"])
            if raw.get("engine_override_path")
            else None
        ),
        deployment_configuration={
            str(port): _resolve(base_dir, path) for port, path in deployment.items()
        },
    )
    logger.debug(f"Run configuration: {config}")
    return config


def load_run_configuration(path: Path) -> RunConfiguration:
    """Read the run configuration from a YAML file.

    Raises:
        ConfigurationError: If the file cannot be read or contains invalid settings
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read run configuration '{path}': {e}") from e
    return parse_run_configuration(raw, path.parent)


def load_deployment_configuration(path: Path) -> dict[str, Any]:
    """Read the key/value pairs that are made available to tests on a device.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot read deployment configuration '{path}': {e}"
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"The deployment configuration '{path}' must be a mapping of keys to values"
        )
    return {str(k): v for k, v in data.items()}
