# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Selection of the test cases to run on a real hardware device.

For every test case of a selection the real hardware selectors decide
whether it should run on the device. A test case that is already selected to
run on another device is not run again if all selectors that apply to both
devices consider the devices equal.

Selectors are user code and may raise. A test case runs if any of its
selectors returns true, also when others raise; the errors are logged for the
device. If none returns true and some raise, the test case is skipped with the
errors in its messages, so it is never silently dropped.
"""

import logging

from device_test_runner.catalog.collection import TestCaseSelection
from device_test_runner.catalog.selectors import RealHardwareSelector
from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.configuration import RunConfiguration
from device_test_runner.core.constants import (
    DEVICE_NOT_SUITABLE,
    EQUIVALENT_DEVICE,
    SELECTION_FAILED,
)
from device_test_runner.core.types import LoggingLevel, TestOutcome, TestResult
from device_test_runner.execution.context import ExecutionContext

logger = logging.getLogger(__name__)


def _skip(
    test_case: TestCase,
    selection_index: int,
    context: ExecutionContext,
    error_message: str,
    messages: list[str],
) -> TestResult:
    return TestResult(
        test_case=test_case,
        selection_index=selection_index,
        device_name=context.log.device_name,
        outcome=TestOutcome.SKIPPED,
        error_message=error_message,
        messages=messages,
    )


def select_tests_to_run(
    selection: TestCaseSelection,
    context: ExecutionContext,
    other_contexts: list[ExecutionContext],
    configuration: RunConfiguration,
) -> list[TestResult]:
    """Fill ``context.filtered_selection`` with the test cases to run on the device.

    Args:
        selection: Real hardware selection to choose from
        context: Execution context of the device; ``test_device`` must be set
        other_contexts: Contexts of other devices that have concluded their
            selection for the same selection
        configuration: Run configuration

    Returns:
        Skipped results for test cases that will not run on this device and
        that should be reported: selector failures, equivalent devices and,
        with detailed logging, devices that are not suitable
    """
    context.filtered_selection = selection.empty_copy()
    if configuration.is_serial_port_excluded(context.serial_port):
        context.log(
            LoggingLevel.DETAILED,
            f"A device is connected to {context.serial_port}, but that serial port is excluded in the configuration.",
        )
        return []
    if context.test_device is None:
        raise ValueError("The execution context has no test device description")

    device = context.test_device
    should_run_errors: dict[RealHardwareSelector, str] = {}
    equal_cache: dict[tuple[int, RealHardwareSelector], bool | str] = {}
    not_selected: list[TestResult] = []

    for selection_index, test_case in selection:
        if not test_case.real_hardware_selectors:
            continue
        messages: list[str] = []

        should_run = False
        evaluation_failed = False
        for selector in test_case.real_hardware_selectors:
            if selector not in context.should_run_on_device and selector not in should_run_errors:
                try:
                    context.should_run_on_device[selector] = bool(
                        selector.should_test_on_device(device)
                    )
                except Exception as e:
                    should_run_errors[selector] = str(e)
                    logger.warning(
                        f"{selector.description}: cannot evaluate should_test_on_device "
                        f"for the {context.log.device_name}: {e}"
                    )
            if selector in should_run_errors:
                evaluation_failed = True
                messages.append(
                    f"{selector.description}: Error: Cannot evaluate 'should_test_on_device': {should_run_errors[selector]}"
                )
            elif context.should_run_on_device[selector]:
                should_run = True

        if evaluation_failed and not should_run:
            messages.append(
                "Test is skipped as no real hardware selector returns true for 'should_test_on_device' "
                "and a call to 'should_test_on_device' fails for some of them."
            )
            not_selected.append(_skip(test_case, selection_index, context, SELECTION_FAILED, messages))
            continue
        if evaluation_failed:
            for message in messages:
                context.log(LoggingLevel.WARNING, f"{test_case.display_name}: {message}")
            messages = []
            evaluation_failed = False

        if not should_run:
            if configuration.logging == LoggingLevel.DETAILED:
                messages.append(
                    "Test is skipped on this device as none of the real hardware selectors return true for 'should_test_on_device'."
                )
                not_selected.append(_skip(test_case, selection_index, context, DEVICE_NOT_SUITABLE, messages))
            continue

        devices_are_equal = False
        for other in other_contexts:
            if other.filtered_selection is None or test_case not in other.filtered_selection:
                continue
            equal = True
            for selector in test_case.real_hardware_selectors:
                if not (
                    context.should_run_on_device.get(selector, False)
                    and other.should_run_on_device.get(selector, False)
                ):
                    continue
                key = (id(other), selector)
                if key not in equal_cache:
                    try:
                        equal_cache[key] = bool(
                            selector.are_devices_equal(other.test_device, device)
                        )
                    except Exception as e:
                        equal_cache[key] = str(e)
                        logger.warning(
                            f"{selector.description}: cannot evaluate are_devices_equal "
                            f"for the {other.log.device_name} and the {context.log.device_name}: {e}"
                        )
                outcome = equal_cache[key]
                if isinstance(outcome, str):
                    evaluation_failed = True
                    messages.append(
                        f"{selector.description}: Error: Cannot evaluate 'are_devices_equal': {outcome}"
                    )
                    equal = False
                    break
                if not outcome:
                    equal = False
                    break
            if evaluation_failed:
                break
            if equal:
                devices_are_equal = True
                break

        if evaluation_failed:
            messages.append(
                "Test is skipped as a call to 'are_devices_equal' fails for some of the real hardware selectors."
            )
            not_selected.append(_skip(test_case, selection_index, context, SELECTION_FAILED, messages))
            continue

        if devices_are_equal:
            messages.append(
                "Test is skipped on this device as it has already been selected to run on an equivalent device."
            )
            not_selected.append(_skip(test_case, selection_index, context, EQUIVALENT_DEVICE, messages))
            continue

        context.filtered_selection.add(test_case, selection_index)

    logger.debug(
        f"{len(context.filtered_selection)} of {len(selection)} test case(s) of "
        f"{selection.name} selected for the {context.log.device_name}"
    )
    return not_selected
