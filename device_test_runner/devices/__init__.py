# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Virtual devices, real hardware devices and their discovery."""

from .base import ExecutionControl, RealHardwareDevice, VirtualDevice
from .command_device import CommandRealHardwareDevice, CommandVirtualDevice
from .discovery import DeviceDiscovery, InventoryDeviceDiscovery
from .exclusive_access import DeviceAccessLocks, device_access
from .subprocess_runner import SubprocessRunner
from .test_device import TestDevice

__all__ = [
    "CommandRealHardwareDevice",
    "CommandVirtualDevice",
    "DeviceAccessLocks",
    "DeviceDiscovery",
    "ExecutionControl",
    "InventoryDeviceDiscovery",
    "RealHardwareDevice",
    "SubprocessRunner",
    "TestDevice",
    "VirtualDevice",
    "device_access",
]
