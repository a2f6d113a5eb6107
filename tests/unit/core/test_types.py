# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for core types: LoggingLevel, TestResult, TestResults.

Focus: exit code priority, outcome counting and message sections. Basic
dataclass attribute access is not tested.
"""

from pathlib import Path

import pytest

from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.types import (
    ExecutionState,
    LoggingLevel,
    TestOutcome,
    TestResult,
    TestResults,
)


class TestLoggingLevel:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("verbose", LoggingLevel.VERBOSE), (" ERROR ", LoggingLevel.ERROR), (0, LoggingLevel.NONE)],
    )
    def test_parse(self, value: object, expected: LoggingLevel) -> None:
        assert LoggingLevel.parse(value) == expected

    def test_parse_invalid(self) -> None:
        with pytest.raises(ValueError, match="not a valid logging level"):
            LoggingLevel.parse("chatty")

    def test_accepts(self) -> None:
        assert LoggingLevel.WARNING.accepts(LoggingLevel.ERROR)
        assert not LoggingLevel.WARNING.accepts(LoggingLevel.VERBOSE)
        assert not LoggingLevel.NONE.accepts(LoggingLevel.ERROR)


class TestTestResult:
    def test_append_section(self) -> None:
        result = TestResult(TestCase(Path("a.bin"), "Tests.A"), messages=["output"])

        result.append_section("*** Setup ***", [])
        result.append_section("*** Setup ***", ["connected"])

        assert result.messages == ["output", "", "*** Setup ***", "connected"]

    def test_duration(self) -> None:
        result = TestResult(TestCase(Path("a.bin"), "Tests.A"), duration_ticks=15_000_000)

        assert result.duration.total_seconds() == 1.5

    def test_str(self) -> None:
        result = TestResult(TestCase(Path("a.bin"), "Tests.A"), outcome=TestOutcome.SKIPPED)

        assert str(result) == "A on no device: skipped"


class TestTestResultsFactoryMethods:
    def test_empty_creates_empty_state(self) -> None:
        result = TestResults.empty()

        assert result.state == ExecutionState.EMPTY
        assert result.total == 0
        assert result.exit_code == 0

    def test_from_error(self) -> None:
        result = TestResults.from_error("discovery crashed")

        assert result.has_error
        assert result.reason == "discovery crashed"
        assert result.exit_code == 255

    def test_from_results_counts_outcomes(self) -> None:
        test_case = TestCase(Path("a.bin"), "Tests.A")
        results = [
            TestResult(test_case, outcome=outcome)
            for outcome in (
                TestOutcome.PASSED,
                TestOutcome.PASSED,
                TestOutcome.FAILED,
                TestOutcome.SKIPPED,
                TestOutcome.NONE,
                TestOutcome.NOT_FOUND,
            )
        ]

        summary = TestResults.from_results(results)

        assert (summary.passed, summary.failed, summary.skipped, summary.other) == (2, 1, 1, 2)
        assert summary.total == 6
        assert str(summary) == "6/2/1/1/2"

    def test_from_no_results(self) -> None:
        assert TestResults.from_results([]).state == ExecutionState.EMPTY


class TestExitCode:
    def test_failures_are_the_exit_code(self) -> None:
        assert TestResults(passed=3, failed=4).exit_code == 4

    def test_failures_are_capped(self) -> None:
        assert TestResults(failed=1000).exit_code == 250

    def test_all_passed(self) -> None:
        assert TestResults(passed=3, skipped=2).exit_code == 0
        assert str(TestResults(passed=3, skipped=2)) == "5/3/0/2"
