# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Selections of test cases, split per binary and per device class."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from device_test_runner.catalog.tag_matcher import TagMatcher
from device_test_runner.catalog.test_case import TestCase, TestCaseGroup


@dataclass
class TestCaseSelection:
    """Ordered test cases from one binary, each with its selection index.

    The selection index is the position of the test case in a caller-supplied
    subset of the catalog, or -1 if the selection was built from the whole
    catalog.
    """

    __test__ = False

    binary_path: Path
    name: str = ""
    test_cases: list[tuple[int, TestCase]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.binary_path.name

    def __len__(self) -> int:
        return len(self.test_cases)

    def __iter__(self) -> Iterator[tuple[int, TestCase]]:
        return iter(self.test_cases)

    def __contains__(self, test_case: object) -> bool:
        return any(tc == test_case for _, tc in self.test_cases)

    def add(self, test_case: TestCase, selection_index: int = -1) -> None:
        self.test_cases.append((selection_index, test_case))

    @property
    def is_empty(self) -> bool:
        return not self.test_cases

    @property
    def groups(self) -> list[TestCaseGroup]:
        """Groups of the selected test cases, in order of first appearance."""
        seen: dict[int, TestCaseGroup] = {}
        for _, test_case in self.test_cases:
            if test_case.group is not None and id(test_case.group) not in seen:
                seen[id(test_case.group)] = test_case.group
        return list(seen.values())

    def empty_copy(self) -> TestCaseSelection:
        """A selection for the same binary without test cases."""
        return TestCaseSelection(self.binary_path, self.name)


class TestCaseCollection:
    """The test cases to run, split into virtual device and real hardware selections.

    A test case that can run on a virtual device is only placed in the
    virtual device selection of its binary; otherwise it is placed in the real
    hardware selection if it has at least one real hardware selector. A test
    case without either is never run and is reported by the runner.
    """

    __test__ = False

    def __init__(self, test_cases: Iterable[TestCase], is_subset: bool = False) -> None:
        """Build the selections.

        Args:
            test_cases: Test cases in discovery order
            is_subset: The test cases are a caller-supplied subset of the
                catalog; their position is recorded as the selection index
        """
        self.test_cases: list[TestCase] = []
        self.is_subset = is_subset
        self._virtual: dict[Path, TestCaseSelection] = {}
        self._real_hardware: dict[Path, TestCaseSelection] = {}
        self._indices: dict[TestCase, int] = {}

        for position, test_case in enumerate(test_cases):
            if test_case not in self._indices:
                self._add(test_case, position if is_subset else -1)

    def __len__(self) -> int:
        return len(self.test_cases)

    @property
    def virtual_device_selections(self) -> list[TestCaseSelection]:
        return list(self._virtual.values())

    @property
    def real_hardware_selections(self) -> list[TestCaseSelection]:
        return list(self._real_hardware.values())

    @property
    def unassigned_test_cases(self) -> list[TestCase]:
        """Test cases that run neither on a virtual device nor on real hardware."""
        return [
            tc
            for tc in self.test_cases
            if not tc.run_on_virtual_device and not tc.runs_on_real_hardware
        ]

    def selection_index(self, test_case: TestCase) -> int:
        return self._indices.get(test_case, -1)

    def filtered(self, tag_matcher: TagMatcher) -> tuple[TestCaseCollection, list[TestCase]]:
        """Apply category filters.

        Returns:
            The collection of the included test cases, and the excluded test cases
        """
        if not tag_matcher.has_filters:
            return self, []
        collection = TestCaseCollection([], self.is_subset)
        excluded: list[TestCase] = []
        for test_case in self.test_cases:
            if tag_matcher.should_include(sorted(test_case.categories)):
                collection._add(test_case, self._indices[test_case])
            else:
                excluded.append(test_case)
        return collection, excluded

    def _add(self, test_case: TestCase, selection_index: int) -> None:
        self._indices[test_case] = selection_index
        self.test_cases.append(test_case)
        if test_case.run_on_virtual_device:
            target = self._virtual
        elif test_case.runs_on_real_hardware:
            target = self._real_hardware
        else:
            return
        if test_case.binary_path not in target:
            target[test_case.binary_path] = TestCaseSelection(test_case.binary_path)
        target[test_case.binary_path].add(test_case, selection_index)
