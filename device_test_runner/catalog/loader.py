# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Loads a test case catalog from YAML.

The catalog describes the test classes found in each test binary:

    binaries:
      - path: build/Device.Tests.bin
        groups:
          - name: Device.Tests.GpioTests
            instantiation: once_per_group     # none, once_per_group, once_per_case
            setup_cleanup_per_case: false
            setup: [Initialize]
            cleanup: [Teardown]
            tests:
              - name: ToggleLed
                virtual_device: false
                real_hardware: [{platform: ESP32}]
                categories: [gpio, smoke]
                configuration_keys: [led_pin]
              - name: ParseValue
                data_rows: 3

``virtual_device`` defaults to true when no ``real_hardware`` selectors are
given, and to false otherwise. Relative binary paths are resolved against the
directory of the catalog file.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from device_test_runner.catalog.collection import TestCaseCollection
from device_test_runner.catalog.selectors import RealHardwareSelector, create_selector
from device_test_runner.catalog.test_case import (
    InstantiationPolicy,
    TestCase,
    TestCaseGroup,
)

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Raised when the catalog file is missing or malformed."""


def _as_list(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        return [value]
    if not isinstance(value, list):
        raise CatalogError(f"{what} must be a list")
    return value


def _parse_selectors(definitions: list[Any], where: str) -> tuple[RealHardwareSelector, ...]:
    selectors = []
    for definition in definitions:
        try:
            selectors.append(create_selector(definition))
        except ValueError as e:
            raise CatalogError(f"{where}: {e}") from None
    return tuple(selectors)


def _parse_group(binary_path: Path, index: int, raw: dict[str, Any]) -> TestCaseGroup:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise CatalogError(f"{binary_path}: test class #{index} must have a 'name'")
    name = str(raw["name"])

    try:
        instantiation = InstantiationPolicy(raw.get("instantiation", "once_per_group"))
    except ValueError:
        raise CatalogError(
            f"{name}: unknown instantiation '{raw.get('instantiation')}'"
        ) from None

    group = TestCaseGroup(
        index=index,
        fully_qualified_name=name,
        instantiation=instantiation,
        setup_cleanup_per_case=bool(raw.get("setup_cleanup_per_case", False)),
        setup_methods=[str(m) for m in _as_list(raw.get("setup"), f"{name}: 'setup'")],
        cleanup_methods=[str(m) for m in _as_list(raw.get("cleanup"), f"{name}: 'cleanup'")],
    )

    for method_index, test in enumerate(_as_list(raw.get("tests"), f"{name}: 'tests'")):
        if isinstance(test, str):
            test = {"name": test}
        if not isinstance(test, dict) or not test.get("name"):
            raise CatalogError(f"{name}: test #{method_index} must have a 'name'")
        method_name = f"{name}.{test['name']}"

        selectors = _parse_selectors(
            _as_list(test.get("real_hardware"), f"{method_name}: 'real_hardware'"),
            method_name,
        )
        run_on_virtual_device = bool(test.get("virtual_device", not selectors))
        categories = frozenset(
            str(c) for c in _as_list(test.get("categories"), f"{method_name}: 'categories'")
        )
        keys = frozenset(
            str(k)
            for k in _as_list(
                test.get("configuration_keys"), f"{method_name}: 'configuration_keys'"
            )
        )

        data_rows = test.get("data_rows", 0)
        if not isinstance(data_rows, int) or data_rows < 0:
            raise CatalogError(f"{method_name}: 'data_rows' must be 0 or larger")
        row_indices = range(data_rows) if data_rows else [-1]

        for row in row_indices:
            group.add_test_case(
                TestCase(
                    binary_path=binary_path,
                    fully_qualified_name=method_name,
                    data_row_index=row,
                    method_index=method_index,
                    run_on_virtual_device=run_on_virtual_device,
                    real_hardware_selectors=selectors,
                    categories=categories,
                    required_configuration_keys=keys,
                    group=group,
                )
            )
    return group


def parse_catalog(raw: Any, base_dir: Path) -> list[TestCase]:
    """Create the test cases described by a parsed catalog.

    Raises:
        CatalogError: If the catalog is malformed
    """
    if not isinstance(raw, dict) or "binaries" not in raw:
        raise CatalogError("The catalog must be a mapping with a 'binaries' list")

    test_cases: list[TestCase] = []
    for binary in _as_list(raw["binaries"], "'binaries'"):
        if not isinstance(binary, dict) or not binary.get("path"):
            raise CatalogError("Every binary in the catalog must have a 'path'")
        binary_path = Path(str(binary["path"]))
        if not binary_path.is_absolute():
            binary_path = base_dir / binary_path

        for index, raw_group in enumerate(_as_list(binary.get("groups"), "'groups'")):
            group = _parse_group(binary_path, index, raw_group)
            test_cases.extend(group.test_cases)

    logger.info(f"Catalog contains {len(test_cases)} test case(s)")
    return test_cases


def load_catalog(path: Path, subset: list[str] | None = None) -> TestCaseCollection:
    """Load the catalog and build the collection of test cases to run.

    Args:
        path: Path to the catalog YAML file
        subset: Fully qualified names of the test methods to run; all test
            cases are run if None

    Raises:
        CatalogError: If the catalog cannot be read or is malformed
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise CatalogError(f"Cannot read catalog '{path}': {e}") from e

    test_cases = parse_catalog(raw, path.parent)
    if subset is None:
        return TestCaseCollection(test_cases)

    by_name: dict[str, list[TestCase]] = {}
    for test_case in test_cases:
        by_name.setdefault(test_case.fully_qualified_name, []).append(test_case)
    selected: list[TestCase] = []
    for name in subset:
        if name not in by_name:
            logger.warning(f"Test '{name}' is not found in the catalog")
            continue
        selected.extend(by_name[name])
    return TestCaseCollection(selected, is_subset=True)
