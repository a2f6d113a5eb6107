# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Utility modules for device-test-runner."""

from device_test_runner.utils.system_resources import SystemResourceCalculator
from device_test_runner.utils.terminal import terminal

__all__ = [
    "terminal",
    "SystemResourceCalculator",
]
