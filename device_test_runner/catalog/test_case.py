# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Test cases and the groups they are executed in."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from device_test_runner.catalog.selectors import RealHardwareSelector

logger = logging.getLogger(__name__)


class InstantiationPolicy(str, Enum):
    """How often the test class of a group is instantiated."""

    NONE = "none"
    ONCE_PER_GROUP = "once_per_group"
    ONCE_PER_CASE = "once_per_case"


@dataclass(eq=False)
class TestCaseGroup:
    """A test class: test cases that share instantiation, setup and cleanup.

    A group has at most one setup and one cleanup method. Additional
    declarations are ignored and recorded in ``warnings``.

    Attributes:
        index: Index of the test class in the binary; used on the wire
        fully_qualified_name: Name of the test class
        instantiation: When the test class is instantiated
        setup_cleanup_per_case: Run setup/cleanup around every test case
            instead of once for the group
        setup_methods: The designated setup method (at most one)
        cleanup_methods: The designated cleanup method (at most one)
        test_cases: Test cases in discovery order
        warnings: Problems found in the group declaration
    """

    __test__ = False

    index: int
    fully_qualified_name: str
    instantiation: InstantiationPolicy = InstantiationPolicy.ONCE_PER_GROUP
    setup_cleanup_per_case: bool = False
    setup_methods: list[str] = field(default_factory=list)
    cleanup_methods: list[str] = field(default_factory=list)
    test_cases: list[TestCase] = field(default_factory=list, repr=False)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.setup_methods = self._designate("setup", self.setup_methods)
        self.cleanup_methods = self._designate("cleanup", self.cleanup_methods)

    def _designate(self, kind: str, methods: list[str]) -> list[str]:
        if len(methods) <= 1:
            return list(methods)
        for extra in methods[1:]:
            message = (
                f"{self.fully_qualified_name}.{extra}: only one {kind} method is "
                f"allowed per test class; the {kind} method '{methods[0]}' is used."
            )
            self.warnings.append(message)
            logger.warning(message)
        return [methods[0]]

    @property
    def setup_method(self) -> str | None:
        return self.setup_methods[0] if self.setup_methods else None

    @property
    def cleanup_method(self) -> str | None:
        return self.cleanup_methods[0] if self.cleanup_methods else None

    def add_test_case(self, test_case: TestCase) -> None:
        if test_case.group is not self:
            raise ValueError(
                f"Test case '{test_case.fully_qualified_name}' belongs to another group"
            )
        self.test_cases.append(test_case)


@dataclass(frozen=True)
class TestCase:
    """A single test: a test method, or one data row of a test method.

    Identity is (binary path, fully qualified method name, data row index);
    all other attributes are descriptive.
    """

    __test__ = False

    binary_path: Path
    fully_qualified_name: str
    data_row_index: int = -1
    display_name: str = field(default="", compare=False)
    method_index: int = field(default=0, compare=False)
    run_on_virtual_device: bool = field(default=True, compare=False)
    real_hardware_selectors: tuple[RealHardwareSelector, ...] = field(
        default=(), compare=False
    )
    categories: frozenset[str] = field(default=frozenset(), compare=False)
    required_configuration_keys: frozenset[str] = field(
        default=frozenset(), compare=False
    )
    group: TestCaseGroup | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.display_name:
            name = self.fully_qualified_name.rsplit(".", 1)[-1]
            if self.data_row_index >= 0:
                name = f"{name} [{self.data_row_index}]"
            object.__setattr__(self, "display_name", name)

    @property
    def runs_on_real_hardware(self) -> bool:
        return len(self.real_hardware_selectors) > 0

    @property
    def group_index(self) -> int:
        return self.group.index if self.group is not None else -1

    @property
    def wire_key(self) -> tuple[int, int, int]:
        """Address of the test case in the status stream of a device."""
        return (self.group_index, self.method_index, self.data_row_index)
