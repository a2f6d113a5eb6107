# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Test case catalog: test cases, groups, selectors and selections."""

from .collection import TestCaseCollection, TestCaseSelection
from .loader import CatalogError, load_catalog, parse_catalog
from .selectors import (
    RealHardwareSelector,
    TestOnEveryDevice,
    TestOnPlatform,
    TestOnRealHardware,
    TestOnTarget,
    create_selector,
)
from .tag_matcher import TagMatcher
from .test_case import InstantiationPolicy, TestCase, TestCaseGroup

__all__ = [
    "CatalogError",
    "InstantiationPolicy",
    "RealHardwareSelector",
    "TagMatcher",
    "TestCase",
    "TestCaseCollection",
    "TestCaseGroup",
    "TestCaseSelection",
    "TestOnEveryDevice",
    "TestOnPlatform",
    "TestOnRealHardware",
    "TestOnTarget",
    "create_selector",
    "load_catalog",
    "parse_catalog",
]
