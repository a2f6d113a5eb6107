# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Scheduling of test execution and decoding of device output."""

from .context import DeviceLog, ExecutionContext, ExecutionStage, RealHardwareExecution
from .device_selection import select_tests_to_run
from .launcher import Launcher, LauncherGenerator, ManifestLauncherGenerator
from .output_parser import Communication, UnitTestsOutputParser
from .tests_runner import ResultSink, TestsRunner

__all__ = [
    "Communication",
    "DeviceLog",
    "ExecutionContext",
    "ExecutionStage",
    "Launcher",
    "LauncherGenerator",
    "ManifestLauncherGenerator",
    "RealHardwareExecution",
    "ResultSink",
    "TestsRunner",
    "UnitTestsOutputParser",
    "select_tests_to_run",
]
