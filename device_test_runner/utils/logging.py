# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Logging setup for the command line interface."""

import logging
import sys
from enum import Enum

import errorhandler


class VerbosityLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def configure_logging(
    level: VerbosityLevel | str, error_handler: errorhandler.ErrorHandler
) -> None:
    """Configure the root logger and reset the error handler.

    Args:
        level: Minimum level of the messages written to stderr
        error_handler: Handler whose ``fired`` flag records that an error was logged
    """
    if isinstance(level, VerbosityLevel):
        level = level.value
    log_level = getattr(logging, str(level).upper(), logging.WARNING)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.StreamHandler) and getattr(
            handler, "_device_test_runner", False
        ):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    )
    handler._device_test_runner = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(log_level)

    error_handler.reset()
