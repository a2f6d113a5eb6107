# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for ResultCollector."""

import threading
from pathlib import Path

from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.types import TestOutcome, TestResult
from device_test_runner.reporting.collector import NO_DEVICE, ResultCollector


def _result(name: str, outcome: TestOutcome, device: str | None = None) -> TestResult:
    return TestResult(TestCase(Path("a.bin"), f"Tests.{name}"), device_name=device, outcome=outcome)


class TestResultCollector:
    def test_results_per_device(self) -> None:
        collector = ResultCollector()

        collector.add_results([_result("A", TestOutcome.PASSED, "COM3")], "COM3")
        collector.add_results([_result("B", TestOutcome.SKIPPED)], None)
        collector.add_results([_result("A", TestOutcome.FAILED, "COM4")], "COM4")

        by_device = collector.results_by_device()
        assert list(by_device) == ["COM3", NO_DEVICE, "COM4"]
        assert len(collector.results) == 3
        assert len(collector.results_for(TestCase(Path("a.bin"), "Tests.A"))) == 2

    def test_summary(self) -> None:
        collector = ResultCollector()
        collector.add_results(
            [
                _result("A", TestOutcome.PASSED),
                _result("B", TestOutcome.FAILED),
                _result("C", TestOutcome.NONE),
            ],
            "virtual device",
        )

        summary = collector.summary()

        assert (summary.passed, summary.failed, summary.other) == (1, 1, 1)
        assert summary.exit_code == 1

    def test_concurrent_adds(self) -> None:
        collector = ResultCollector()

        def add(device: str) -> None:
            for i in range(100):
                collector.add_results([_result(str(i), TestOutcome.PASSED, device)], device)

        threads = [threading.Thread(target=add, args=(f"COM{n}",)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(collector.results) == 400
        assert all(len(r) == 100 for r in collector.results_by_device().values())
