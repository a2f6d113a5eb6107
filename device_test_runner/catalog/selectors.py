# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Selectors that decide on which real hardware devices a test case runs.

A selector answers two questions:

- should the test case run on this device? (``should_test_on_device``)
- are two devices the same as far as this test case is concerned?
  (``are_devices_equal``); if so the test only has to run on one of them.

Selectors may be user-supplied and are allowed to raise; the selection engine
treats an exception as "cannot decide" and reports it on the test result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from device_test_runner.devices.test_device import TestDevice


class RealHardwareSelector(ABC):
    """Base class of all real hardware selectors.

    Implementations must be hashable: evaluation results are memoized per
    selector.
    """

    @property
    def description(self) -> str:
        return repr(self)

    @abstractmethod
    def should_test_on_device(self, device: TestDevice) -> bool:
        """Indicates whether the test case should be run on ``device``."""

    @abstractmethod
    def are_devices_equal(self, device1: TestDevice, device2: TestDevice) -> bool:
        """Indicates whether running the test case on both devices is redundant."""


@dataclass(frozen=True)
class TestOnRealHardware(RealHardwareSelector):
    """Run the test case on every real hardware device, once per target."""

    __test__ = False

    def should_test_on_device(self, device: TestDevice) -> bool:
        return True

    def are_devices_equal(self, device1: TestDevice, device2: TestDevice) -> bool:
        return device1.target_name == device2.target_name


@dataclass(frozen=True)
class TestOnPlatform(RealHardwareSelector):
    """Run the test case on devices of one platform, once per target."""

    __test__ = False

    platform: str

    def should_test_on_device(self, device: TestDevice) -> bool:
        return device.platform == self.platform

    def are_devices_equal(self, device1: TestDevice, device2: TestDevice) -> bool:
        return device1.target_name == device2.target_name


@dataclass(frozen=True)
class TestOnTarget(RealHardwareSelector):
    """Run the test case on devices running one firmware target, once."""

    __test__ = False

    target: str

    def should_test_on_device(self, device: TestDevice) -> bool:
        return device.target_name == self.target

    def are_devices_equal(self, device1: TestDevice, device2: TestDevice) -> bool:
        return device1.target_name == device2.target_name


@dataclass(frozen=True)
class TestOnEveryDevice(RealHardwareSelector):
    """Run the test case on every device, even on devices with the same target."""

    __test__ = False

    def should_test_on_device(self, device: TestDevice) -> bool:
        return True

    def are_devices_equal(self, device1: TestDevice, device2: TestDevice) -> bool:
        return False


SELECTOR_TYPES: dict[str, type[RealHardwareSelector]] = {
    "real_hardware": TestOnRealHardware,
    "platform": TestOnPlatform,
    "target": TestOnTarget,
    "every_device": TestOnEveryDevice,
}


def create_selector(definition: Any) -> RealHardwareSelector:
    """Create a selector from its catalog definition.

    Accepted forms are a bare name (``real_hardware``) or a single-entry
    mapping with the argument (``{platform: ESP32}``).

    Raises:
        ValueError: If the selector is unknown or has the wrong arguments
    """
    if isinstance(definition, str):
        name, argument = definition, None
    elif isinstance(definition, dict) and len(definition) == 1:
        name, argument = next(iter(definition.items()))
    else:
        raise ValueError(f"Invalid real hardware selector: {definition!r}")

    selector_type = SELECTOR_TYPES.get(str(name))
    if selector_type is None:
        known = ", ".join(sorted(SELECTOR_TYPES))
        raise ValueError(f"Unknown real hardware selector '{name}', expected one of: {known}")

    if selector_type in (TestOnPlatform, TestOnTarget):
        if argument is None or argument == "":
            raise ValueError(f"Real hardware selector '{name}' requires a value")
        return selector_type(str(argument))
    if argument is not None:
        raise ValueError(f"Real hardware selector '{name}' does not take a value")
    return selector_type()
