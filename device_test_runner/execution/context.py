# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""State of the execution of a selection on real hardware devices."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from device_test_runner.catalog.collection import TestCaseSelection
from device_test_runner.catalog.selectors import RealHardwareSelector
from device_test_runner.core.types import LoggingLevel
from device_test_runner.devices.base import RealHardwareDevice
from device_test_runner.devices.test_device import TestDevice

logger = logging.getLogger(__name__)

_PYTHON_LOG_LEVELS = {
    LoggingLevel.DETAILED: logging.DEBUG,
    LoggingLevel.VERBOSE: logging.INFO,
    LoggingLevel.WARNING: logging.WARNING,
    LoggingLevel.ERROR: logging.ERROR,
}


class DeviceLog:
    """Collects the messages about a device that are added to its test results.

    Messages at or above the configured level are kept; every message is also
    passed to the Python logger. An error marks the device as failed to
    initialize.
    """

    def __init__(self, device_name: str, logging_level: LoggingLevel) -> None:
        self.device_name = device_name
        self.logging_level = logging_level
        self.messages: list[str] = []
        self.has_errors = False

    def __call__(self, level: LoggingLevel, message: str) -> None:
        """Log a message about the device.

        Args:
            level: Level of the message; NONE messages are dropped
            message: The message, without the device name
        """
        if level == LoggingLevel.NONE:
            return
        if level == LoggingLevel.ERROR:
            self.has_errors = True
        logger.log(_PYTHON_LOG_LEVELS[level], f"{self.device_name}: {message}")
        if self.logging_level.accepts(level):
            self.messages.append(f"{level.name.capitalize()}: {message}")


class ExecutionStage(str, Enum):
    INVESTIGATING = "investigating"
    RUNNING = "running"
    DONE = "done"


@dataclass(eq=False)
class ExecutionContext:
    """Execution of one selection on one real hardware device.

    Attributes:
        device: The device
        log: Messages about the device, added to the results
        test_device: Capabilities passed to the selectors
        stage: Investigating while the test cases to run are selected,
            Running while they execute, Done afterwards
        should_run_on_device: Memoized ``should_test_on_device`` per selector
        filtered_selection: The test cases selected to run on the device
    """

    device: RealHardwareDevice
    log: DeviceLog
    test_device: TestDevice | None = None
    stage: ExecutionStage = ExecutionStage.INVESTIGATING
    should_run_on_device: dict[RealHardwareSelector, bool] = field(default_factory=dict)
    filtered_selection: TestCaseSelection | None = None

    @property
    def serial_port(self) -> str:
        return self.device.serial_port

    @property
    def is_investigating(self) -> bool:
        return self.stage == ExecutionStage.INVESTIGATING


class RealHardwareExecution:
    """All execution contexts of one selection, one per device.

    Control loops of different devices share this object. A control loop that
    finds another device investigating the selection waits on ``condition``,
    which is notified whenever a context leaves the Investigating stage.
    """

    def __init__(self, selection: TestCaseSelection) -> None:
        self.selection = selection
        self.contexts: dict[str, ExecutionContext] = {}
        self.condition = asyncio.Condition()

    def is_investigating_elsewhere(self, serial_port: str) -> bool:
        return any(
            context.is_investigating
            for port, context in self.contexts.items()
            if port != serial_port
        )

    def has_context(self, serial_port: str) -> bool:
        return serial_port in self.contexts

    def claim(self, device: RealHardwareDevice, logging_level: LoggingLevel) -> ExecutionContext:
        """Create the context of a device for this selection.

        Args:
            device: The device that investigates the selection
            logging_level: Level of the messages kept for the results

        Returns:
            The new context, in the Investigating stage
        """
        context = ExecutionContext(device, DeviceLog(device.name, logging_level))
        self.contexts[device.serial_port] = context
        return context

    def concluded_contexts(self, excluding: ExecutionContext) -> list[ExecutionContext]:
        """Contexts of other devices whose test case selection is final."""
        return [
            context
            for context in self.contexts.values()
            if context is not excluding
            and not context.is_investigating
            and context.filtered_selection is not None
        ]

    async def set_stage(self, context: ExecutionContext, stage: ExecutionStage) -> None:
        """Move a context to another stage and wake up the waiting control loops."""
        async with self.condition:
            context.stage = stage
            self.condition.notify_all()

    async def wait_for_investigation(self, timeout: float) -> None:
        """Wait until a context leaves Investigating, at most ``timeout`` seconds."""
        async with self.condition:
            try:
                await asyncio.wait_for(self.condition.wait(), timeout)
            except asyncio.TimeoutError:
                pass
