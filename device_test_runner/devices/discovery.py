# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Discovery of real hardware devices.

Discovery is a stream: devices are yielded as soon as they are found, so the
runner can start testing on the first device while others are still being
looked for. Devices on excluded serial ports are never yielded.

The inventory file lists the devices that may be connected:

    devices:
      - serial_port: /dev/ttyUSB0
        target: ESP32_REV3
        platform: ESP32
        command: [device-flash, --port, "{serial_port}", --run-id, "{run_id}", "{artifacts}"]
        check_port: true                 # only report the device if the port exists
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Any

import yaml

from device_test_runner.core.configuration import ConfigurationError
from device_test_runner.devices.base import RealHardwareDevice
from device_test_runner.devices.command_device import CommandRealHardwareDevice

logger = logging.getLogger(__name__)


class DeviceDiscovery(ABC):
    """Finds the real hardware devices tests can be run on."""

    async def discover_all(
        self, exclude_serial_ports: Iterable[str] = ()
    ) -> AsyncIterator[RealHardwareDevice]:
        """Yield every device that is not connected to an excluded serial port."""
        excluded = set(exclude_serial_ports)
        async for device in self._discover():
            if device.serial_port in excluded:
                logger.debug(f"Ignoring device on excluded serial port {device.serial_port}")
                continue
            yield device

    async def discover_selected(
        self, serial_ports: Iterable[str]
    ) -> AsyncIterator[RealHardwareDevice]:
        """Yield the devices connected to one of ``serial_ports``."""
        selected = set(serial_ports)
        async for device in self._discover():
            if device.serial_port in selected:
                yield device

    @abstractmethod
    def _discover(self) -> AsyncIterator[RealHardwareDevice]:
        """Yield all devices found, best effort."""


class InventoryDeviceDiscovery(DeviceDiscovery):
    """Reports the devices listed in an inventory file."""

    def __init__(self, entries: list[dict[str, Any]], working_dir: Path | None = None) -> None:
        self.entries = entries
        self.working_dir = working_dir

    @classmethod
    def from_file(cls, path: Path) -> "InventoryDeviceDiscovery":
        """Read the inventory.

        Raises:
            ConfigurationError: If the file cannot be read or is malformed
        """
        try:
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read device inventory '{path}': {e}") from e
        entries = raw.get("devices") if isinstance(raw, dict) else None
        if not isinstance(entries, list):
            raise ConfigurationError(f"The device inventory '{path}' must contain a 'devices' list")
        for entry in entries:
            missing = [
                key
                for key in ("serial_port", "target", "platform", "command")
                if not isinstance(entry, dict) or not entry.get(key)
            ]
            if missing:
                raise ConfigurationError(
                    f"Device entry {entry!r} in '{path}' is missing: {', '.join(missing)}"
                )
        return cls(entries, path.parent)

    async def _discover(self) -> AsyncIterator[RealHardwareDevice]:
        """Yield a device per inventory entry.

        An entry with ``check_port`` set is only reported if its serial port exists.
        """
        for entry in self.entries:
            serial_port = str(entry["serial_port"])
            if entry.get("check_port") and not await asyncio.to_thread(Path(serial_port).exists):
                logger.info(f"No device connected to {serial_port}")
                continue
            logger.info(f"Real hardware device with target '{entry['target']}' connected to {serial_port}")
            yield CommandRealHardwareDevice(
                serial_port=serial_port,
                target_name=str(entry["target"]),
                platform=str(entry["platform"]),
                command=[str(a) for a in entry["command"]],
                working_dir=self.working_dir,
            )
