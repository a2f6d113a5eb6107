# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Core components shared across device-test-runner."""

from device_test_runner.core.configuration import (
    ConfigurationError,
    RunConfiguration,
    load_run_configuration,
)
from device_test_runner.core.types import (
    LoggingLevel,
    TestOutcome,
    TestResult,
    TestResults,
)

__all__ = [
    "ConfigurationError",
    "LoggingLevel",
    "RunConfiguration",
    "TestOutcome",
    "TestResult",
    "TestResults",
    "load_run_configuration",
]
