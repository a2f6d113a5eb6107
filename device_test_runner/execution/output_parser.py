# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Decoder for the status stream of the test launcher.

The launcher running on a device reports progress as lines of the form

    <runId>:<kind><classIndex>[T<methodIndex>][D<dataRowIndex>]:<elapsedTicks>:<verb>[:<detail>]

with kind ``C`` (test class), ``M`` (test method) or ``D`` (data row of a test
method), and ends the run with ``<runId>:AllTestsDone``. Verbs are sent by
name or by numeric value. All other output is log output of the tests.

The stream arrives in arbitrary chunks; partial lines are kept until the
rest of the line arrives. Lines carrying another run id come from another
run on the same transport and are dropped.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum

from device_test_runner.catalog.collection import TestCaseSelection
from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.constants import (
    CLEANUP_OUTPUT_HEADING,
    DEPLOYMENT_OUTPUT_HEADING,
    SETUP_OUTPUT_HEADING,
    TEST_ABORTED,
    TEST_NOT_RUN,
)
from device_test_runner.core.types import TestOutcome, TestResult

logger = logging.getLogger(__name__)

CaseKey = tuple[int, int, int]

STATUS_LINE_PATTERN = re.compile(
    r"^(?P<run>[^:\s]+):"
    r"(?:"
    r"(?P<kind>[CMD])(?P<cls>\d+)(?:T(?P<method>\d+))?(?:D(?P<row>\d+))?"
    r":(?P<ticks>-?\d+):(?P<verb>\w+)(?::(?P<detail>.*))?"
    r"|(?:-?\d+:)?(?P<all_done>AllTestsDone)"
    r")$"
)


class Communication(IntEnum):
    """Verbs of the status stream."""

    METHOD_ERROR = 0
    START = 1
    INSTANTIATE = 2
    SETUP = 3
    SETUP_COMPLETE = 4
    SETUP_FAIL = 5
    SKIPPED = 6
    PASS = 7
    FAIL = 8
    TESTS_COMPLETE = 9
    CLEANUP = 10
    DISPOSE = 11
    CLEANUP_FAIL = 12
    CLEANUP_COMPLETE = 13
    DONE = 14
    ALL_TESTS_DONE = 15

    @classmethod
    def parse(cls, verb: str) -> "Communication | None":
        if verb.isdigit():
            try:
                return cls(int(verb))
            except ValueError:
                return None
        return _VERBS_BY_NAME.get(verb.replace("_", "").lower())


_VERBS_BY_NAME = {member.name.replace("_", "").lower(): member for member in Communication}


@dataclass
class _CaseState:
    selection_index: int
    test_case: TestCase
    outcome: TestOutcome | None = None
    error_message: str | None = None
    duration_ticks: int = 0
    output: list[str] = field(default_factory=list)
    extra_messages: list[str] = field(default_factory=list)
    emitted: bool = False


@dataclass
class _GroupState:
    index: int
    keys: list[CaseKey] = field(default_factory=list)
    started: bool = False
    closed: bool = False
    tests_complete: bool = False
    current_case: CaseKey | None = None
    setup_output: list[str] = field(default_factory=list)
    cleanup_output: list[str] = field(default_factory=list)
    cleanup_failure: str | None = None


class UnitTestsOutputParser:
    """Turns the output of one run into test results.

    Results are passed to ``on_results`` per test class, when the class is
    done. ``on_all_done`` is called once the launcher reports that all tests
    have been run; the device can be stopped at that point.
    """

    def __init__(
        self,
        selection: TestCaseSelection,
        device_name: str | None,
        report_prefix: str,
        on_results: Callable[[list[TestResult]], None],
        on_all_done: Callable[[], None] | None = None,
    ) -> None:
        self.selection = selection
        self.device_name = device_name
        self.report_prefix = report_prefix
        self._on_results = on_results
        self._on_all_done = on_all_done

        self._cases: dict[CaseKey, _CaseState] = {}
        self._groups: dict[int, _GroupState] = {}
        for selection_index, test_case in selection:
            key = test_case.wire_key
            if key in self._cases:
                continue
            self._cases[key] = _CaseState(selection_index, test_case)
            group = self._groups.setdefault(key[0], _GroupState(key[0]))
            group.keys.append(key)

        self._buffer = ""
        self._deployment_output: list[str] = []
        self._current_group: _GroupState | None = None
        self._group_seen = False
        self._all_done = False
        self._flushed = False
        self._received_status = False

    @property
    def all_done(self) -> bool:
        return self._all_done

    @property
    def received_status(self) -> bool:
        """True once a status line of this run has been processed."""
        return self._received_status

    def add_output(self, output: str) -> None:
        """Process the next chunk of output of the device."""
        if self._flushed:
            logger.debug("Output received after the parser was flushed; ignored")
            return
        self._buffer += output
        *lines, self._buffer = re.split(r"\r?\n", self._buffer)
        for line in lines:
            self._process_line(line)

    def flush(self, force: bool = False) -> None:
        """Finish processing after the execution has ended.

        Results are created for all selected test cases that do not have one
        yet. Must be called exactly once.

        Args:
            force: The execution was aborted (timeout or cancellation); test
                cases without an outcome are reported as inconclusive skips
                instead of as not run
        """
        if self._flushed:
            raise RuntimeError("The output parser has already been flushed")
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._process_line(line)
        self._flushed = True

        for group in self._groups.values():
            if any(not self._cases[key].emitted for key in group.keys):
                if force:
                    self._emit_group(group, TestOutcome.SKIPPED, TEST_ABORTED, inconclusive=True)
                else:
                    self._emit_group(group, TestOutcome.NONE, TEST_NOT_RUN, inconclusive=False)

    def _process_line(self, line: str) -> None:
        """Dispatch one complete line of output.

        Status lines of this run update the state of their test class or
        test; other lines are attached as log output. Nothing is processed
        after all tests are done.
        """
        if self._all_done:
            return
        match = STATUS_LINE_PATTERN.match(line.strip())
        if match is None:
            self._add_log_line(line)
            return
        if match["run"] != self.report_prefix:
            logger.debug(f"Dropping status line of another run: {line}")
            return
        self._received_status = True
        if match["all_done"]:
            self._handle_all_done()
            return

        verb = Communication.parse(match["verb"])
        if verb is None:
            logger.debug(f"Unknown verb in status line: {line}")
            self._add_log_line(line)
            return
        if verb == Communication.ALL_TESTS_DONE:
            self._handle_all_done()
            return

        class_index = int(match["cls"])
        detail = match["detail"] or ""
        if match["kind"] == "C":
            self._handle_group_event(class_index, verb, detail)
        else:
            method_index = int(match["method"]) if match["method"] is not None else 0
            row = int(match["row"]) if match["kind"] == "D" and match["row"] is not None else -1
            self._handle_case_event((class_index, method_index, row), verb, int(match["ticks"]), detail)

    def _add_log_line(self, line: str) -> None:
        """Attach a log line to the case, group or deployment it belongs to.

        Output before the first test class starts is deployment output. Output
        between two test classes belongs to no result and is only logged.
        """
        group = self._current_group
        if group is None:
            if self._group_seen:
                logger.debug(f"Output between test classes: {line}")
            else:
                self._deployment_output.append(line)
        elif group.current_case is not None:
            self._cases[group.current_case].output.append(line)
        elif group.tests_complete:
            group.cleanup_output.append(line)
        else:
            group.setup_output.append(line)

    def _group(self, class_index: int) -> _GroupState | None:
        group = self._groups.get(class_index)
        if group is None:
            logger.debug(f"Status for test class {class_index} that is not in the selection")
        return group

    def _handle_group_event(self, class_index: int, verb: Communication, detail: str) -> None:
        """Update a test class for a status line that applies to the class.

        Args:
            class_index: Index of the test class in the binary
            verb: What happened
            detail: Text after the verb, e.g. the reason of a failure
        """
        group = self._group(class_index)
        if group is None or group.closed:
            return

        if verb == Communication.START:
            group.started = True
            self._current_group = group
            self._group_seen = True
        elif verb in (Communication.SETUP_FAIL, Communication.METHOD_ERROR):
            message = detail or "Initialization of the test class failed"
            self._decide_remaining(group, TestOutcome.SKIPPED, message)
        elif verb == Communication.SKIPPED:
            self._decide_remaining(group, TestOutcome.SKIPPED, detail or "Test class is skipped")
        elif verb == Communication.TESTS_COMPLETE:
            group.tests_complete = True
            group.current_case = None
        elif verb == Communication.CLEANUP_FAIL:
            group.cleanup_failure = detail or "Cleanup of the test class failed"
            self._emit_group(group, TestOutcome.NONE, TEST_NOT_RUN, inconclusive=False)
        elif verb == Communication.DONE:
            self._emit_group(group, TestOutcome.NONE, TEST_NOT_RUN, inconclusive=False)

    def _decide_remaining(self, group: _GroupState, outcome: TestOutcome, message: str) -> None:
        """Give all tests of the class without an outcome the same outcome."""
        for key in group.keys:
            case = self._cases[key]
            if case.outcome is None:
                case.outcome = outcome
                case.error_message = message

    def _handle_case_event(self, key: CaseKey, verb: Communication, ticks: int, detail: str) -> None:
        """Update a test for a status line that applies to the test.

        A status line of a test implies that its class has started.

        Args:
            key: Class, method and data row index of the test
            verb: What happened
            ticks: Duration of the test in 100 ns ticks
            detail: Text after the verb, e.g. the reason of a failure
        """
        case = self._cases.get(key)
        group = self._groups.get(key[0])
        if case is None or group is None or group.closed:
            logger.debug(f"Status for test {key} that is not in the selection")
            return
        if self._current_group is not group:
            group.started = True
            self._current_group = group
            self._group_seen = True

        if verb == Communication.START:
            group.current_case = key
            return

        if verb == Communication.CLEANUP_FAIL:
            if case.outcome == TestOutcome.PASSED:
                case.outcome = TestOutcome.FAILED
                case.error_message = detail or "Cleanup after the test failed"
            else:
                case.extra_messages.append(f"Cleanup after the test failed: {detail}")
            return

        outcome = {
            Communication.PASS: TestOutcome.PASSED,
            Communication.FAIL: TestOutcome.FAILED,
            Communication.SKIPPED: TestOutcome.SKIPPED,
            Communication.SETUP_FAIL: TestOutcome.SKIPPED,
            Communication.METHOD_ERROR: TestOutcome.NOT_FOUND,
        }.get(verb)
        if outcome is None:
            return
        case.outcome = outcome
        case.duration_ticks = ticks
        if verb == Communication.SETUP_FAIL:
            case.error_message = f"Setup before the test failed: {detail}" if detail else "Setup before the test failed"
        elif detail:
            case.error_message = detail

    def _handle_all_done(self) -> None:
        """Abort the classes that started but did not finish."""
        self._all_done = True
        for group in self._groups.values():
            if group.started and not group.closed:
                self._emit_group(group, TestOutcome.SKIPPED, TEST_ABORTED, inconclusive=True)
        if self._on_all_done is not None:
            self._on_all_done()

    def _emit_group(
        self,
        group: _GroupState,
        undecided_outcome: TestOutcome,
        undecided_message: str,
        inconclusive: bool,
    ) -> None:
        """Close a test class and pass the results of its tests on.

        Tests that have already been reported are not reported again. The
        setup, cleanup and deployment output is appended to every result.

        Args:
            group: The test class
            undecided_outcome: Outcome for tests without a status
            undecided_message: Error message for tests without a status
            inconclusive: Whether the results of tests without a status are inconclusive
        """
        group.closed = True
        group.current_case = None
        if self._current_group is group:
            self._current_group = None

        results: list[TestResult] = []
        for key in group.keys:
            case = self._cases[key]
            if case.emitted:
                continue
            case.emitted = True
            decided = case.outcome is not None
            result = TestResult(
                test_case=case.test_case,
                selection_index=case.selection_index,
                device_name=self.device_name,
                outcome=case.outcome if decided else undecided_outcome,
                error_message=case.error_message if decided else undecided_message,
                messages=list(case.output),
                duration_ticks=case.duration_ticks,
                inconclusive=not decided and inconclusive,
            )
            for message in case.extra_messages:
                result.messages.append(message)
            result.append_section(SETUP_OUTPUT_HEADING, group.setup_output)
            cleanup = list(group.cleanup_output)
            if group.cleanup_failure:
                cleanup.append(f"Cleanup of the test class failed: {group.cleanup_failure}")
            result.append_section(CLEANUP_OUTPUT_HEADING, cleanup)
            result.append_section(DEPLOYMENT_OUTPUT_HEADING, self._deployment_output)
            results.append(result)

        if results:
            self._on_results(results)
