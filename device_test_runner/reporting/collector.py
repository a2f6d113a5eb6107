# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Collects the test results reported by the runner."""

import logging
import threading
from collections import defaultdict

from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.types import TestOutcome, TestResult, TestResults

logger = logging.getLogger(__name__)

NO_DEVICE = "not executed"


class ResultCollector:
    """Thread-safe result sink.

    Results are kept in arrival order, and per device in the order the device
    reported them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: list[TestResult] = []
        self._by_device: dict[str, list[TestResult]] = defaultdict(list)

    def add_results(self, results: list[TestResult], device_name: str | None) -> None:
        with self._lock:
            self._results.extend(results)
            self._by_device[device_name or NO_DEVICE].extend(results)
        for result in results:
            if result.outcome == TestOutcome.FAILED:
                logger.info(f"FAILED {result.test_case.fully_qualified_name} on {device_name}: {result.error_message}")
            else:
                logger.debug(str(result))

    @property
    def results(self) -> list[TestResult]:
        with self._lock:
            return list(self._results)

    def results_by_device(self) -> dict[str, list[TestResult]]:
        with self._lock:
            return {device: list(results) for device, results in self._by_device.items()}

    def results_for(self, test_case: TestCase) -> list[TestResult]:
        with self._lock:
            return [r for r in self._results if r.test_case == test_case]

    def summary(self) -> TestResults:
        return TestResults.from_results(self.results)
