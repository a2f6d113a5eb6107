# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""In-memory devices, discovery and launcher generator for runner tests.

The fake launcher generator remembers the selection of every launcher it
creates; fake devices look the selection up from the launcher artifact and
emit a well-formed status stream for it.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from typing import Any

from device_test_runner.catalog.collection import TestCaseCollection, TestCaseSelection
from device_test_runner.catalog.loader import parse_catalog
from device_test_runner.catalog.selectors import RealHardwareSelector
from device_test_runner.catalog.test_case import TestCase, TestCaseGroup
from device_test_runner.core.types import LogCallback, LoggingLevel, TestResult
from device_test_runner.devices.base import (
    ExecutionControl,
    OutputCallback,
    RealHardwareDevice,
    VirtualDevice,
)
from device_test_runner.devices.discovery import DeviceDiscovery
from device_test_runner.devices.test_device import TestDevice
from device_test_runner.execution.launcher import Launcher, LauncherGenerator


def build_collection(tmp_path: Path, binaries: dict[str, list[dict[str, Any]]]) -> TestCaseCollection:
    """Create a collection with one test class ``<binary>.Tests`` per binary.

    The binary files are created in ``tmp_path``.
    """
    raw = {"binaries": []}
    for binary, tests in binaries.items():
        (tmp_path / binary).write_bytes(b"")
        raw["binaries"].append(
            {"path": binary, "groups": [{"name": f"{binary}.Tests", "tests": tests}]}
        )
    return TestCaseCollection(parse_catalog(raw, tmp_path))


def make_test_cases(
    binary_path: Path,
    cases: dict[str, tuple[RealHardwareSelector, ...]],
    run_on_virtual_device: bool = False,
) -> list[TestCase]:
    """Create one test class with a test case per entry of ``cases``."""
    group = TestCaseGroup(0, f"{binary_path.name}.Tests")
    for method_index, (name, selectors) in enumerate(cases.items()):
        group.add_test_case(
            TestCase(
                binary_path=binary_path,
                fully_qualified_name=f"{group.fully_qualified_name}.{name}",
                method_index=method_index,
                run_on_virtual_device=run_on_virtual_device,
                real_hardware_selectors=selectors,
                group=group,
            )
        )
    return list(group.test_cases)


def status_lines(
    report_prefix: str,
    selection: TestCaseSelection,
    outcomes: dict[str, str] | None = None,
    all_done: bool = True,
) -> list[str]:
    """Status stream for running ``selection``; outcomes map method names to verbs."""
    outcomes = outcomes or {}
    lines: list[str] = []
    by_group: dict[int, list[TestCase]] = {}
    for _, test_case in selection:
        by_group.setdefault(test_case.group_index, []).append(test_case)
    for group_index, test_cases in by_group.items():
        lines.append(f"{report_prefix}:C{group_index}:0:Start")
        for test_case in test_cases:
            if test_case.data_row_index >= 0:
                entity = f"D{group_index}T{test_case.method_index}D{test_case.data_row_index}"
            else:
                entity = f"M{group_index}T{test_case.method_index}"
            verb = outcomes.get(test_case.fully_qualified_name.rsplit(".", 1)[-1], "Pass")
            lines.append(f"{report_prefix}:{entity}:0:Start")
            lines.append(f"Output of {test_case.display_name}")
            lines.append(f"{report_prefix}:{entity}:1000:{verb}")
        lines.append(f"{report_prefix}:C{group_index}:0:Done")
    if all_done:
        lines.append(f"{report_prefix}:AllTestsDone")
    return lines


class FakeLauncherGenerator(LauncherGenerator):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.selections: dict[Path, TestCaseSelection] = {}
        self.devices: list[TestDevice | None] = []

    async def generate(
        self,
        selection: TestCaseSelection,
        device: TestDevice | None,
        log: LogCallback,
    ) -> Launcher:
        if self.fail:
            raise RuntimeError("launcher generation failed")
        path = Path(f"launcher-{len(self.selections)}")
        self.selections[path] = selection
        self.devices.append(device)
        return Launcher([selection.binary_path, path])


class ConcurrencyTracker:
    """Records how many executions overlap, overall and per key."""

    def __init__(self) -> None:
        self.active: dict[str, int] = {}
        self.max_active: dict[str, int] = {}
        self.total_active = 0
        self.max_total_active = 0

    def enter(self, key: str) -> None:
        self.active[key] = self.active.get(key, 0) + 1
        self.max_active[key] = max(self.max_active.get(key, 0), self.active[key])
        self.total_active += 1
        self.max_total_active = max(self.max_total_active, self.total_active)

    def leave(self, key: str) -> None:
        self.active[key] -= 1
        self.total_active -= 1


class _ScriptedRun:
    """Shared behavior of the fake devices."""

    def __init__(
        self,
        launchers: FakeLauncherGenerator,
        outcomes: dict[str, str] | None = None,
        tracker: ConcurrencyTracker | None = None,
        block: bool = False,
        fail_start: bool = False,
        delay: float = 0.01,
    ) -> None:
        self.launchers = launchers
        self.outcomes = outcomes
        self.tracker = tracker
        self.block = block
        self.fail_start = fail_start
        self.delay = delay
        self.executed: list[TestCaseSelection] = []

    async def play(
        self,
        key: str,
        artifacts: Sequence[Path],
        report_prefix: str,
        process_output: OutputCallback,
        control: ExecutionControl,
    ) -> bool:
        if self.fail_start:
            return False
        selection = self.launchers.selections[artifacts[1]]
        self.executed.append(selection)
        if self.tracker is not None:
            self.tracker.enter(key)
        try:
            await asyncio.sleep(self.delay)
            if self.block:
                process_output("Device started\n")
                await control.stop_event.wait()
                return True
            # unrelated output and a line of another run are interleaved
            process_output("boot complete\nother-run:AllTestsDone\n")
            for line in status_lines(report_prefix, selection, self.outcomes):
                process_output(line + "\n")
            return True
        finally:
            if self.tracker is not None:
                self.tracker.leave(key)


class FakeVirtualDevice(VirtualDevice):
    def __init__(self, script: _ScriptedRun) -> None:
        self.script = script

    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        engine_override_path: Path | None,
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        return await self.script.play("virtual", artifacts, report_prefix, process_output, control)


def virtual_device_factory(launchers: FakeLauncherGenerator, **kwargs: Any) -> tuple[Callable[[], VirtualDevice], _ScriptedRun]:
    script = _ScriptedRun(launchers, **kwargs)
    return (lambda: FakeVirtualDevice(script)), script


class FakeRealHardwareDevice(RealHardwareDevice):
    def __init__(
        self,
        serial_port: str,
        target_name: str,
        platform: str,
        launchers: FakeLauncherGenerator,
        **kwargs: Any,
    ) -> None:
        super().__init__(serial_port, target_name, platform)
        self.script = _ScriptedRun(launchers, **kwargs)

    @property
    def executed(self) -> list[TestCaseSelection]:
        return self.script.executed

    async def _run_assemblies(
        self,
        artifacts: Sequence[Path],
        logging_level: LoggingLevel,
        report_prefix: str,
        process_output: OutputCallback,
        log: LogCallback,
        control: ExecutionControl,
    ) -> bool:
        return await self.script.play(self.serial_port, artifacts, report_prefix, process_output, control)


class FakeDiscovery(DeviceDiscovery):
    def __init__(self, devices: list[RealHardwareDevice], hang: bool = False) -> None:
        self.devices = devices
        self.hang = hang

    async def _discover(self) -> AsyncIterator[RealHardwareDevice]:
        for device in self.devices:
            await asyncio.sleep(0)
            yield device
        if self.hang:
            await asyncio.Event().wait()


class RecordingSink:
    def __init__(self) -> None:
        self.results: list[TestResult] = []
        self.device_names: list[str | None] = []

    def add_results(self, results: list[TestResult], device_name: str | None) -> None:
        self.results.extend(results)
        self.device_names.extend(device_name for _ in results)

    def for_case(self, name: str) -> list[TestResult]:
        return [r for r in self.results if r.test_case.fully_qualified_name.endswith(f".{name}")]
