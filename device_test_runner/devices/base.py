# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Devices that test binaries can be run on.

Both kinds of device run a set of artifacts and stream the text output of
the run to a callback. Implementations must return promptly, without
raising, once the stop event of the ExecutionControl is set.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from pathlib import Path

from device_test_runner.core.types import LogCallback, LoggingLevel
from device_test_runner.devices.exclusive_access import device_access
from device_test_runner.devices.test_device import TestDevice

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]


class ExecutionControl:
    """Stop signal and timeout for a single execution on a device.

    The timeout clock starts when the device calls ``start_timeout``: for real
    hardware that is after exclusive access to the device has been acquired,
    so waiting for another execution does not count.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        self.stop_event = asyncio.Event()
        self.timed_out = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def start_timeout(self) -> None:
        """Start the timeout clock; has no effect without a timeout or if already started."""
        if self.timeout is None or self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout, self._on_timeout)

    def _on_timeout(self) -> None:
        if not self.stop_event.is_set():
            self.timed_out = True
            self.stop_event.set()

    def close(self) -> None:
        """Cancel the timer. Must be called once the execution has returned."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class VirtualDevice(ABC):
    """An instance of the virtual execution engine."""

    name = "virtual device"

    async def run_assemblies(
        self,
        artifacts: Sequence[Path],
        engine_override_path: Path | None,
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        """Run the artifacts on a new instance of the virtual engine.

        Args:
            artifacts: Binaries and launcher files to deploy
            engine_override_path: Alternative engine build to use, if any
            logging_level: Level of the messages the run should report
            report_prefix: Correlation token the launcher prefixes its status lines with
            process_output: Receives the output of the run as it arrives
            log: Receives diagnostic messages about the device
            control: Stop signal and timeout of the run

        Returns:
            True if the engine started and ran the artifacts
        """
        control.start_timeout()
        return await self._run_assemblies(
            artifacts, engine_override_path, logging_level, report_prefix, process_output, log, control
        )

    @abstractmethod
    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        engine_override_path: Path | None,
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool: ...


class RealHardwareDevice(ABC):
    """A device connected to a serial port.

    Communication is serialized per serial port: ``run_assemblies`` holds the
    exclusive access lock of the port for the duration of the run, also when
    the run is stopped or raises.
    """

    def __init__(self, serial_port: str, target_name: str, platform: str) -> None:
        self.serial_port = serial_port
        self.target_name = target_name
        self.platform = platform

    @property
    def name(self) -> str:
        return f"device connected to {self.serial_port}"

    def describe(self, deployment_configuration: dict | None = None) -> TestDevice:
        return TestDevice(self.target_name, self.platform, deployment_configuration or {})

    async def run_assemblies(
        self,
        artifacts: Sequence[Path],
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        """Deploy and run the artifacts on the device.

        Args:
            artifacts: Binaries and launcher files to deploy
            logging_level: Level of the messages the run should report
            report_prefix: Correlation token the launcher prefixes its status lines with
            process_output: Receives the output of the run as it arrives
            log: Receives diagnostic messages about the device
            control: Stop signal and timeout of the run

        Returns:
            True if the artifacts were deployed and started
        """
        async with device_access.exclusive(self.serial_port):
            if control.stopped:
                return False
            control.start_timeout()
            return await self._run_assemblies(
                artifacts, logging_level, report_prefix, process_output, log, control
            )

    @abstractmethod
    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool: ...

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(serial_port={self.serial_port!r}, "
            f"target_name={self.target_name!r}, platform={self.platform!r})"
        )
