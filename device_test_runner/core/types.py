# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Core types for device test orchestration."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum, IntEnum
from typing import TYPE_CHECKING

from device_test_runner.core.constants import (
    EXIT_ERROR,
    EXIT_FAILURE_CAP,
    TICKS_PER_SECOND,
)

if TYPE_CHECKING:
    from device_test_runner.catalog.test_case import TestCase


class LoggingLevel(IntEnum):
    """Level of the messages collected while running tests on a device.

    A message is kept if its level is at least the configured level; NONE
    disables collection altogether.
    """

    NONE = 0
    DETAILED = 1
    VERBOSE = 2
    WARNING = 3
    ERROR = 4

    @classmethod
    def parse(cls, value: str | int | LoggingLevel) -> LoggingLevel:
        """Convert a configuration or CLI value (name or number) to a level."""
        if isinstance(value, LoggingLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"'{value}' is not a valid logging level") from None

    def accepts(self, level: LoggingLevel) -> bool:
        """Check whether a message at ``level`` should be kept."""
        return self != LoggingLevel.NONE and level >= self


LogCallback = Callable[[LoggingLevel, str], None]


class TestOutcome(str, Enum):
    """Outcome of a single test case on a single device."""

    __test__ = False

    NONE = "none"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"


@dataclass
class TestResult:
    """Result of running (or not running) a test case.

    Attributes:
        test_case: The test case the result is for
        selection_index: Position of the test case in a caller-supplied
            subset, or -1
        device_name: Name of the device that produced the result; None if the
            test case has not been executed on any device
        outcome: Outcome of the test
        error_message: Short description of a failure or skip reason
        messages: Output and diagnostics collected for the test
        duration_ticks: Execution time in 100 ns ticks as reported by the device
        inconclusive: True for best-effort results created when the
            execution was aborted before the test reached a terminal state
    """

    __test__ = False

    test_case: TestCase
    selection_index: int = -1
    device_name: str | None = None
    outcome: TestOutcome = TestOutcome.NONE
    error_message: str | None = None
    messages: list[str] = field(default_factory=list)
    duration_ticks: int = 0
    inconclusive: bool = False

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_ticks / TICKS_PER_SECOND)

    def append_section(self, heading: str, lines: list[str]) -> None:
        """Append a headed block of lines, separated from earlier messages."""
        if not lines:
            return
        if self.messages:
            self.messages.append("")
        self.messages.append(heading)
        self.messages.extend(lines)

    def __str__(self) -> str:
        device = self.device_name or "no device"
        return f"{self.test_case.display_name} on {device}: {self.outcome.value}"


class ExecutionState(str, Enum):
    """How a run ended, independent of the test outcomes."""

    SUCCESS = "success"
    EMPTY = "empty"  # nothing was reported
    ERROR = "error"  # the run itself broke off


@dataclass
class TestResults:
    """Outcome counts of a run.

    Every result counts, so a test case reported for two devices is counted
    twice. ``other`` holds results without a verdict (not run, not found).
    """

    __test__ = False

    passed: int = 0
    failed: int = 0
    skipped: int = 0
    other: int = 0
    reason: str | None = None
    state: ExecutionState = ExecutionState.SUCCESS

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped + self.other

    @classmethod
    def empty(cls) -> TestResults:
        return cls(state=ExecutionState.EMPTY)

    @classmethod
    def from_error(cls, reason: str) -> TestResults:
        """Summary of a run that was broken off, e.g. by an interrupt."""
        return cls(reason=reason, state=ExecutionState.ERROR)

    @classmethod
    def from_results(cls, results: list[TestResult]) -> TestResults:
        if not results:
            return cls.empty()
        counts = cls()
        for result in results:
            if result.outcome == TestOutcome.PASSED:
                counts.passed += 1
            elif result.outcome == TestOutcome.FAILED:
                counts.failed += 1
            elif result.outcome == TestOutcome.SKIPPED:
                counts.skipped += 1
            else:
                counts.other += 1
        return counts

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def has_error(self) -> bool:
        return self.state == ExecutionState.ERROR

    @property
    def exit_code(self) -> int:
        """Process exit code of the run.

        0 without failures, the number of failed results capped at
        EXIT_FAILURE_CAP, or EXIT_ERROR if the run broke off.
        """
        if self.has_error:
            return EXIT_ERROR
        if self.has_failures:
            return min(self.failed, EXIT_FAILURE_CAP)
        return 0

    def __str__(self) -> str:
        counts = [self.total, self.passed, self.failed, self.skipped]
        if self.other:
            counts.append(self.other)
        return "/".join(str(c) for c in counts)
