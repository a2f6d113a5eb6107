# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Writes test results as a JUnit/xunit XML file.

One <testsuite> is written per device, named after the device; results of
test cases that were not executed anywhere go into a "not executed" suite.
Results with outcome None or NotFound are reported as errors.
"""

import logging
from pathlib import Path

# lxml.etree is 2-5x faster than stdlib xml.etree.ElementTree
from lxml import etree as ET

from device_test_runner.core.types import TestOutcome, TestResult

logger = logging.getLogger(__name__)


def _testcase_element(result: TestResult) -> ET._Element:
    test_case = result.test_case
    classname = test_case.group.fully_qualified_name if test_case.group else test_case.binary_path.name
    element = ET.Element("testcase")
    element.set("classname", classname)
    element.set("name", test_case.display_name)
    element.set("time", f"{result.duration.total_seconds():.3f}")

    message = result.error_message or ""
    if result.outcome == TestOutcome.FAILED:
        ET.SubElement(element, "failure", message=message)
    elif result.outcome == TestOutcome.SKIPPED:
        ET.SubElement(element, "skipped", message=message)
    elif result.outcome in (TestOutcome.NONE, TestOutcome.NOT_FOUND):
        ET.SubElement(element, "error", message=message or result.outcome.value, type=result.outcome.value)

    if result.messages:
        output = ET.SubElement(element, "system-out")
        output.text = "\n".join(result.messages)
    return element


def write_xunit(results_by_device: dict[str, list[TestResult]], output_path: Path) -> Path:
    """Write the results to ``output_path``.

    Args:
        results_by_device: Results per device name
        output_path: Path of the XML file to write

    Returns:
        The path of the written file
    """
    root = ET.Element("testsuites")
    totals = {"tests": 0, "failures": 0, "errors": 0, "skipped": 0}
    total_time = 0.0

    for device_name, results in results_by_device.items():
        suite = ET.SubElement(root, "testsuite", name=device_name)
        counts = {"tests": len(results), "failures": 0, "errors": 0, "skipped": 0}
        suite_time = 0.0
        for result in results:
            if result.outcome == TestOutcome.FAILED:
                counts["failures"] += 1
            elif result.outcome == TestOutcome.SKIPPED:
                counts["skipped"] += 1
            elif result.outcome != TestOutcome.PASSED:
                counts["errors"] += 1
            suite_time += result.duration.total_seconds()
            suite.append(_testcase_element(result))
        for key, value in counts.items():
            suite.set(key, str(value))
            totals[key] += value
        suite.set("time", f"{suite_time:.3f}")
        total_time += suite_time

    for key, value in totals.items():
        root.set(key, str(value))
    root.set("time", f"{total_time:.3f}")

    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tree.write(str(output_path), encoding="UTF-8", xml_declaration=True)

    logger.info(
        f"Wrote {totals['tests']} results to {output_path}: "
        f"{totals['failures']} failures, {totals['errors']} errors, {totals['skipped']} skipped"
    )
    return output_path
