# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Devices that run the artifacts by invoking an external command.

The command is a list of arguments with placeholders:

    {engine}        path of the virtual engine (virtual devices only)
    {serial_port}   serial port of the device (real hardware only)
    {run_id}        correlation token of the run
    {logging}       requested logging level (none, detailed, ...)
    {artifacts}     as a separate argument: replaced by one argument per artifact
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from device_test_runner.core.types import LogCallback, LoggingLevel
from device_test_runner.devices.base import (
    ExecutionControl,
    OutputCallback,
    RealHardwareDevice,
    VirtualDevice,
)
from device_test_runner.devices.subprocess_runner import SubprocessRunner

logger = logging.getLogger(__name__)

ARTIFACTS_PLACEHOLDER = "{artifacts}"

DEFAULT_VIRTUAL_DEVICE_COMMAND = [
    "{engine}",
    "run",
    "--run-id",
    "{run_id}",
    "--log-level",
    "{logging}",
    "--assemblies",
    ARTIFACTS_PLACEHOLDER,
]


def expand_command(
    template: Sequence[str], artifacts: Sequence[Path], **values: str
) -> list[str]:
    """Substitute the placeholders of a command template.

    Args:
        template: Command arguments with placeholders
        artifacts: Files that replace an argument that is exactly the artifacts placeholder
        values: Values of the other placeholders

    Returns:
        The command, ready to be executed

    Raises:
        KeyError: If the template has a placeholder without a value
    """
    command: list[str] = []
    for argument in template:
        if argument == ARTIFACTS_PLACEHOLDER:
            command.extend(str(a) for a in artifacts)
        else:
            command.append(argument.format(**values))
    return command


def _log_exit(log: LogCallback, name: str, return_code: int | None, control: ExecutionControl) -> bool:
    """Log how the command ended.

    Returns:
        False if the command could not be started, otherwise True; a non-zero
        return code still means the artifacts ran and produced their output
    """
    if control.stopped:
        log(LoggingLevel.VERBOSE, f"Execution on the {name} was stopped.")
        return True
    if return_code is None:
        log(LoggingLevel.ERROR, f"The {name} could not be started.")
        return False
    if return_code != 0:
        log(LoggingLevel.WARNING, f"The {name} exited with return code {return_code}.")
    return True


class CommandVirtualDevice(VirtualDevice):
    """Runs a new virtual engine process per execution."""

    def __init__(
        self,
        engine_path: Path,
        command: Sequence[str] | None = None,
        working_dir: Path | None = None,
    ) -> None:
        self.engine_path = engine_path
        self.command = list(command or DEFAULT_VIRTUAL_DEVICE_COMMAND)
        self.working_dir = working_dir

    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        engine_override_path: Path | None,
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        # The override replaces the configured engine for this run only
        engine = engine_override_path or self.engine_path
        command = expand_command(
            self.command,
            artifacts,
            engine=str(engine),
            serial_port="",
            run_id=report_prefix,
            logging=logging_level.name.lower(),
        )
        log(LoggingLevel.DETAILED, f"Starting virtual device: {' '.join(command)}")
        runner = SubprocessRunner(process_output, cwd=self.working_dir)
        return_code = await runner.run(command, control.stop_event)
        return _log_exit(log, self.name, return_code, control)


class CommandRealHardwareDevice(RealHardwareDevice):
    """Deploys and runs the artifacts with a command-line tool for the serial port."""

    def __init__(
        self,
        serial_port: str,
        target_name: str,
        platform: str,
        command: Sequence[str],
        working_dir: Path | None = None,
    ) -> None:
        super().__init__(serial_port, target_name, platform)
        self.command = list(command)
        self.working_dir = working_dir

    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        command = expand_command(
            self.command,
            artifacts,
            engine="",
            serial_port=self.serial_port,
            run_id=report_prefix,
            logging=logging_level.name.lower(),
        )
        log(LoggingLevel.DETAILED, f"Deploying to {self.serial_port}: {' '.join(command)}")
        runner = SubprocessRunner(process_output, cwd=self.working_dir)
        return_code = await runner.run(command, control.stop_event)
        return _log_exit(log, self.name, return_code, control)
