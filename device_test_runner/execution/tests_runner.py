# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Runs the test cases of a collection on virtual devices and real hardware."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine, Iterable
from typing import Any, Protocol

from device_test_runner.catalog.collection import TestCaseCollection, TestCaseSelection
from device_test_runner.catalog.tag_matcher import TagMatcher
from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.configuration import (
    ConfigurationError,
    RunConfiguration,
    load_deployment_configuration,
)
from device_test_runner.core.constants import (
    DEPLOYMENT_CONFIGURATION_HEADING,
    DEVICE_INITIALIZATION_HEADING,
    EXECUTION_STOP_GRACE_PERIOD,
    FILTERED_BY_CONFIGURATION,
    INVESTIGATION_POLL_INTERVAL,
    NO_REAL_HARDWARE,
    NO_SUITABLE_REAL_HARDWARE,
    NOT_RUNNABLE,
    REAL_HARDWARE_DISABLED,
    TEST_NOT_EXECUTED,
)
from device_test_runner.core.types import LoggingLevel, TestOutcome, TestResult
from device_test_runner.devices.base import (
    ExecutionControl,
    OutputCallback,
    RealHardwareDevice,
    VirtualDevice,
)
from device_test_runner.devices.discovery import DeviceDiscovery
from device_test_runner.execution.context import (
    DeviceLog,
    ExecutionContext,
    ExecutionStage,
    RealHardwareExecution,
)
from device_test_runner.execution.device_selection import select_tests_to_run
from device_test_runner.execution.launcher import Launcher, LauncherGenerator
from device_test_runner.execution.output_parser import UnitTestsOutputParser
from device_test_runner.utils.system_resources import SystemResourceCalculator

logger = logging.getLogger(__name__)

RunOnDevice = Callable[[str, OutputCallback, ExecutionControl], Coroutine[Any, Any, bool]]


class ResultSink(Protocol):
    def add_results(self, results: list[TestResult], device_name: str | None) -> None: ...


class TestsRunner:
    """Schedules the selections of a collection over the available devices.

    Virtual device selections are run by a bounded pool of workers, each
    running one selection at a time on a new virtual device. Every real
    hardware device found by discovery gets its own control loop that works
    through all real hardware selections. Results are passed to the sink as
    soon as they are known; after the run every test case has at least one
    result.
    """

    __test__ = False

    def __init__(
        self,
        collection: TestCaseCollection,
        configuration: RunConfiguration,
        sink: ResultSink,
        launcher_generator: LauncherGenerator,
        virtual_device_factory: Callable[[], VirtualDevice] | None = None,
        device_discovery: DeviceDiscovery | None = None,
        tag_matcher: TagMatcher | None = None,
        stop_grace_period: float = EXECUTION_STOP_GRACE_PERIOD,
    ):
        """Initialize the runner.

        Args:
            collection: The test cases to run
            configuration: Run configuration
            sink: Receives the test results
            launcher_generator: Creates the launcher for a selection
            virtual_device_factory: Creates a new virtual device; virtual
                device selections are not run if None
            device_discovery: Finds real hardware devices; real hardware
                selections are not run if None
            tag_matcher: Category filter; filtered test cases are reported as skipped
            stop_grace_period: Seconds a stopped execution gets to return
                before it is cancelled
        """
        self.collection = collection
        self.configuration = configuration
        self.sink = sink
        self.launcher_generator = launcher_generator
        self.virtual_device_factory = virtual_device_factory
        self.device_discovery = device_discovery
        self.tag_matcher = tag_matcher
        self.stop_grace_period = stop_grace_period

        self._cancel_event: asyncio.Event | None = None
        self._cancel_requested = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._test_cases_with_result: set[TestCase] = set()
        self._devices_discovered = 0

    def run(self) -> None:
        """Run all tests; blocks until done."""
        asyncio.run(self.run_async())

    def cancel(self) -> None:
        """Stop running executions and do not start new ones.

        Safe to call from any thread.
        """
        self._cancel_requested = True
        if self._loop is not None and self._cancel_event is not None:
            self._loop.call_soon_threadsafe(self._cancel_event.set)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def run_async(self, cancel_event: asyncio.Event | None = None) -> None:
        """Run all tests.

        Args:
            cancel_event: Cancels the run when set
        """
        self._loop = asyncio.get_running_loop()
        self._cancel_event = cancel_event or asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()
        self._test_cases_with_result = set()
        self._devices_discovered = 0

        collection = self.collection
        if self.tag_matcher is not None:
            collection, filtered_out = collection.filtered(self.tag_matcher)
            if filtered_out:
                logger.info(f"{len(filtered_out)} test case(s) filtered by categories")
                self._report_not_executed(filtered_out, FILTERED_BY_CONFIGURATION)

        work: list[Coroutine[Any, Any, None]] = []

        virtual_selections = self._check_virtual_device_configuration(
            collection.virtual_device_selections
        )
        if virtual_selections:
            work.append(self._guarded(self._run_on_virtual_devices(virtual_selections), "on virtual devices"))

        real_hardware_selections = self._check_real_hardware_configuration(
            collection.real_hardware_selections
        )
        if real_hardware_selections:
            work.append(self._guarded(self._run_on_real_hardware(real_hardware_selections), "on real hardware"))

        await asyncio.gather(*work)

        self._complete(collection)

    def _check_binaries(self, selections: list[TestCaseSelection]) -> list[TestCaseSelection]:
        """Skip the selections whose test binary does not exist.

        Returns:
            The selections that can be run
        """
        runnable = []
        for selection in selections:
            if selection.binary_path.exists():
                runnable.append(selection)
                continue
            message = f"Test is not executed as the test binary is not found: '{selection.binary_path}'"
            logger.error(message)
            self._skip_selection(selection, message)
        return runnable

    def _check_virtual_device_configuration(
        self, selections: list[TestCaseSelection]
    ) -> list[TestCaseSelection]:
        """Skip all virtual device selections if no virtual device can be started.

        Args:
            selections: The virtual device selections of the collection

        Returns:
            The selections to run; each skipped one is reported and logged once
        """
        if not selections:
            return []
        message = None
        if self.virtual_device_factory is None:
            message = "Test is not executed as no virtual device is configured"
        elif (
            self.configuration.virtual_engine_path is not None
            and not self.configuration.virtual_engine_path.exists()
        ):
            message = (
                "Test is not executed as 'virtual_engine_path' is not found: "
                f"'{self.configuration.virtual_engine_path}'"
            )
        elif (
            self.configuration.engine_override_path is not None
            and not self.configuration.engine_override_path.exists()
        ):
            message = (
                "Test is not executed as 'engine_override_path' is not found: "
                f"'{self.configuration.engine_override_path}'"
            )
        if message is not None:
            logger.error(message)
            for selection in selections:
                self._skip_selection(selection, message)
            return []
        return self._check_binaries(selections)

    def _check_real_hardware_configuration(
        self, selections: list[TestCaseSelection]
    ) -> list[TestCaseSelection]:
        """Skip all real hardware selections if real hardware is disabled or cannot be discovered."""
        if not selections:
            return []
        message = None
        if not self.configuration.allow_real_hardware:
            message = REAL_HARDWARE_DISABLED
            logger.info(message)
        elif self.device_discovery is None:
            message = "Test is not executed as no real hardware device discovery is configured"
            logger.error(message)
        if message is not None:
            for selection in selections:
                self._skip_selection(selection, message)
            return []
        return self._check_binaries(selections)

    async def _run_on_virtual_devices(self, selections: list[TestCaseSelection]) -> None:
        """Run the selections with a bounded number of virtual devices.

        The number of workers is the virtual device capacity, but never more
        than there are selections. A worker takes the next pending selection
        as soon as it is done with the previous one.
        """
        capacity = SystemResourceCalculator.calculate_virtual_device_capacity(
            self.configuration.max_virtual_devices
        )
        workers = min(capacity, len(selections))
        logger.info(f"Execute tests on at most {workers} virtual device(s) in parallel")

        pending: asyncio.Queue[TestCaseSelection] = asyncio.Queue()
        for selection in selections:
            pending.put_nowait(selection)
        await asyncio.gather(*(self._virtual_device_worker(pending) for _ in range(workers)))

    async def _virtual_device_worker(self, pending: "asyncio.Queue[TestCaseSelection]") -> None:
        """Run pending selections one after another until none is left or the run is cancelled."""
        while not self.cancelled:
            try:
                selection = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._guarded(
                self._run_selection_on_virtual_device(selection),
                f"from '{selection.binary_path}' on a virtual device",
            )

    async def _run_selection_on_virtual_device(self, selection: TestCaseSelection) -> None:
        """Run a selection on a new virtual device.

        Args:
            selection: The test cases to run; all of them get a result
        """
        assert self.virtual_device_factory is not None
        device = self.virtual_device_factory()
        log = DeviceLog(device.name, self.configuration.logging)

        launcher = await self._create_launcher(selection, None, log)
        if launcher is None:
            self._report_initialization_failure(selection, log, None)
            return

        def run(report_prefix: str, process_output: OutputCallback, control: ExecutionControl) -> Coroutine[Any, Any, bool]:
            return device.run_assemblies(
                launcher.artifacts,
                self.configuration.engine_override_path,
                self.configuration.logging,
                report_prefix,
                process_output,
                log,
                control,
            )

        await self._execute(selection, log, launcher, self.configuration.virtual_device_timeout, run)

    def _discover(self) -> AsyncIterator[RealHardwareDevice]:
        """Start discovery, for the allowed serial ports if any are configured."""
        assert self.device_discovery is not None
        if self.configuration.allow_serial_ports:
            logger.info(
                "Execute tests on real hardware devices connected to "
                f"{', '.join(self.configuration.allow_serial_ports)} (if available)"
            )
            return self.device_discovery.discover_selected(self.configuration.allow_serial_ports)
        if self.configuration.exclude_serial_ports:
            logger.info(
                "Execute tests on all available real hardware devices not connected to "
                f"{', '.join(self.configuration.exclude_serial_ports)}"
            )
        return self.device_discovery.discover_all(self.configuration.exclude_serial_ports)

    async def _run_on_real_hardware(self, selections: list[TestCaseSelection]) -> None:
        """Start a control loop for every device as soon as discovery reports it.

        Discovery errors are logged; control loops already started still
        complete.
        """
        executions = [RealHardwareExecution(selection) for selection in selections]
        control_loops: list[asyncio.Task[None]] = []
        try:
            async for device in self._until_cancelled(self._discover()):
                self._devices_discovered += 1
                logger.info(f"Found real hardware: {device!r}")
                control_loops.append(
                    asyncio.create_task(
                        self._guarded(self._control_loop(device, executions), f"on the {device.name}")
                    )
                )
        except Exception as e:
            logger.error(f"Discovery of real hardware devices failed: {e}", exc_info=True)
        finally:
            await asyncio.gather(*control_loops)

    async def _until_cancelled(
        self, devices: AsyncIterator[RealHardwareDevice]
    ) -> AsyncIterator[RealHardwareDevice]:
        """Iterate over the discovered devices until the run is cancelled."""
        assert self._cancel_event is not None
        iterator = devices.__aiter__()
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            while not self.cancelled:
                next_device = asyncio.ensure_future(iterator.__anext__())
                await asyncio.wait({next_device, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
                if not next_device.done():
                    next_device.cancel()
                    await asyncio.gather(next_device, return_exceptions=True)
                    return
                try:
                    device = next_device.result()
                except StopAsyncIteration:
                    return
                yield device
        finally:
            cancel_wait.cancel()
            if hasattr(iterator, "aclose"):
                await iterator.aclose()

    async def _control_loop(
        self, device: RealHardwareDevice, executions: list[RealHardwareExecution]
    ) -> None:
        """Work through all selections for one device.

        A selection that another device is investigating is deferred until
        that investigation has concluded, so that equivalence is only decided
        against final selections.
        """
        while True:
            deferred: RealHardwareExecution | None = None
            for execution in executions:
                if self.cancelled:
                    return
                if execution.has_context(device.serial_port):
                    continue
                if execution.is_investigating_elsewhere(device.serial_port):
                    deferred = deferred or execution
                    continue
                context = execution.claim(device, self.configuration.logging)
                await self._investigate_and_run(execution, context)
            if deferred is None:
                return
            await deferred.wait_for_investigation(INVESTIGATION_POLL_INTERVAL)

    async def _investigate_and_run(self, execution: RealHardwareExecution, context: ExecutionContext) -> None:
        """Select the test cases of a claimed selection and run them on the device.

        The context leaves the investigating stage once the selection is
        decided, also if selecting fails, so that waiting control loops
        continue. The context is done when this returns.

        Args:
            execution: The real hardware selection and its contexts
            context: The context this device claimed
        """
        try:
            try:
                configuration = await self._deployment_configuration(context)
                context.test_device = context.device.describe(configuration)
                not_selected = select_tests_to_run(
                    execution.selection,
                    context,
                    execution.concluded_contexts(context),
                    self.configuration,
                )
            finally:
                if context.filtered_selection is None:
                    context.filtered_selection = execution.selection.empty_copy()
            if not_selected:
                self._add_results(not_selected, context.log, None)

            if context.filtered_selection.is_empty or self.cancelled:
                return
            await execution.set_stage(context, ExecutionStage.RUNNING)
            await self._run_selection_on_real_hardware(context, context.filtered_selection)
        finally:
            await execution.set_stage(context, ExecutionStage.DONE)

    async def _deployment_configuration(self, context: ExecutionContext) -> dict[str, Any]:
        """Read the deployment configuration of the device's serial port.

        A missing or unreadable file is a warning on the device log; the
        device is then used without configuration values.

        Returns:
            The key/value pairs configured for the port, empty if there are none
        """
        path = self.configuration.deployment_configuration_path(context.serial_port)
        if path is None:
            return {}
        if not path.exists():
            context.log(LoggingLevel.WARNING, f"The deployment configuration file is not found: '{path}'.")
            return {}
        try:
            return await asyncio.to_thread(load_deployment_configuration, path)
        except ConfigurationError as e:
            context.log(LoggingLevel.WARNING, str(e))
            return {}

    async def _run_selection_on_real_hardware(
        self, context: ExecutionContext, selection: TestCaseSelection
    ) -> None:
        """Run the test cases selected for a device.

        Args:
            context: Context of the device; its lock is taken by the device
                itself, so the timeout only starts once the device is free
            selection: The selected test cases
        """
        launcher = await self._create_launcher(selection, context, context.log)
        if launcher is None:
            self._report_initialization_failure(selection, context.log, None)
            return

        def run(report_prefix: str, process_output: OutputCallback, control: ExecutionControl) -> Coroutine[Any, Any, bool]:
            return context.device.run_assemblies(
                launcher.artifacts,
                self.configuration.logging,
                report_prefix,
                process_output,
                context.log,
                control,
            )

        await self._execute(selection, context.log, launcher, self.configuration.real_hardware_timeout, run)

    async def _create_launcher(
        self, selection: TestCaseSelection, context: ExecutionContext | None, log: DeviceLog
    ) -> Launcher | None:
        """Create the launcher for a selection.

        Args:
            selection: The test cases to run
            context: Context of the real hardware device, None for a virtual device
            log: Log of the device

        Returns:
            The launcher, or None if it cannot be created or an error was logged
        """
        test_device = context.test_device if context is not None else None
        try:
            launcher = await self.launcher_generator.generate(selection, test_device, log)
        except Exception as e:
            log(LoggingLevel.ERROR, f"An unexpected error prevented the execution of the tests: {e}")
            return None
        if log.has_errors:
            return None
        return launcher

    async def _execute(
        self,
        selection: TestCaseSelection,
        log: DeviceLog,
        launcher: Launcher,
        timeout: float | None,
        run: RunOnDevice,
    ) -> None:
        """Run a selection on a device and turn its output into results."""
        report_prefix = uuid.uuid4().hex
        control = ExecutionControl(timeout)
        parser = UnitTestsOutputParser(
            selection,
            log.device_name,
            report_prefix,
            lambda results: self._add_results(results, log, launcher),
            control.stop,
        )
        cancel_watch = asyncio.create_task(self._stop_on_cancel(control))
        try:
            success = await self._await_execution(
                asyncio.create_task(run(report_prefix, parser.add_output, control)), control
            )
        except Exception as e:
            log(LoggingLevel.ERROR, f"An unexpected error prevented the execution of the tests: {e}")
            success = False
        finally:
            cancel_watch.cancel()
            control.close()

        if self.cancelled:
            log(
                LoggingLevel.VERBOSE,
                f"Execution of tests from '{selection.binary_path}' on the {log.device_name} was cancelled on request.",
            )
            parser.flush(force=True)
        elif control.timed_out:
            log(
                LoggingLevel.VERBOSE,
                f"Execution of the tests on the {log.device_name} was aborted after {timeout} s.",
            )
            parser.flush(force=True)
        elif not success and not parser.received_status:
            self._report_initialization_failure(selection, log, launcher)
        else:
            parser.flush()

    async def _await_execution(self, task: "asyncio.Task[bool]", control: ExecutionControl) -> bool:
        """Wait for the execution; once stopped it gets a grace period to return."""
        stop_wait = asyncio.ensure_future(control.stop_event.wait())
        try:
            await asyncio.wait({task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            if not task.done():
                done, _ = await asyncio.wait({task}, timeout=self.stop_grace_period)
                if not done:
                    logger.warning(
                        f"Execution did not stop within {self.stop_grace_period} s and is cancelled"
                    )
                    task.cancel()
                    await asyncio.gather(task, return_exceptions=True)
                    return False
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop_wait.cancel()
        return task.result()

    async def _stop_on_cancel(self, control: ExecutionControl) -> None:
        """Stop the execution once the run is cancelled."""
        assert self._cancel_event is not None
        await self._cancel_event.wait()
        control.stop()

    async def _guarded(self, work: Awaitable[None], description: str) -> None:
        """Await ``work``; an unexpected error is logged and does not end the run."""
        try:
            await work
        except Exception as e:
            logger.error(f"Unexpected error while executing tests {description}: {e}", exc_info=True)

    def _add_results(self, results: list[TestResult], log: DeviceLog | None, launcher: Launcher | None) -> None:
        """Complete the results with device messages and pass them to the sink.

        Args:
            results: Results of one test class, or skipped results
            log: Log of the device the results are for; None if not executed on a device
            launcher: Launcher of the execution, for the missing configuration keys
        """
        for result in results:
            if launcher is not None and result.test_case in launcher.missing_configuration_keys:
                keys = ", ".join(f"'{k}'" for k in sorted(launcher.missing_configuration_keys[result.test_case]))
                result.append_section(DEPLOYMENT_CONFIGURATION_HEADING, [f"No data available for keys: {keys}"])
            if log is not None:
                result.append_section(DEVICE_INITIALIZATION_HEADING, list(log.messages))
        self._test_cases_with_result.update(result.test_case for result in results)
        self.sink.add_results(results, log.device_name if log is not None else None)

    def _report_initialization_failure(
        self, selection: TestCaseSelection, log: DeviceLog, launcher: Launcher | None
    ) -> None:
        """Skip all test cases of a selection that cannot be run on the device.

        Args:
            selection: The test cases that are not executed
            log: Log of the device; the failure is logged as an error
            launcher: Launcher, if it was created
        """
        message = f"Test is not executed as the {log.device_name} could not be initialized."
        log(LoggingLevel.ERROR, message)
        results = [
            TestResult(
                test_case=test_case,
                selection_index=selection_index,
                device_name=log.device_name,
                outcome=TestOutcome.SKIPPED,
                error_message=message,
            )
            for selection_index, test_case in selection
        ]
        if results:
            self._add_results(results, log, launcher)

    def _skip_selection(self, selection: TestCaseSelection, message: str) -> None:
        """Report all test cases of a selection as skipped without a device."""
        results = [
            TestResult(
                test_case=test_case,
                selection_index=selection_index,
                outcome=TestOutcome.SKIPPED,
                error_message=message,
            )
            for selection_index, test_case in selection
        ]
        if results:
            self._add_results(results, None, None)

    def _report_not_executed(self, test_cases: Iterable[TestCase], message: str) -> None:
        results = [
            TestResult(
                test_case=test_case,
                selection_index=self.collection.selection_index(test_case),
                outcome=TestOutcome.SKIPPED,
                error_message=message,
            )
            for test_case in test_cases
        ]
        if results:
            self._add_results(results, None, None)

    def _complete(self, collection: TestCaseCollection) -> None:
        """Report every test case that has no result yet.

        Virtual device test cases without a result were not executed. Real
        hardware test cases were not executed if the run was cancelled, and
        otherwise had no device at all or no suitable device.

        Args:
            collection: The collection that was run, after category filtering
        """
        if self.cancelled:
            real_hardware_reason = TEST_NOT_EXECUTED
        elif self._devices_discovered == 0:
            real_hardware_reason = NO_REAL_HARDWARE
        else:
            real_hardware_reason = NO_SUITABLE_REAL_HARDWARE

        by_reason: dict[str, list[TestCase]] = {}
        for test_case in collection.test_cases:
            if test_case in self._test_cases_with_result:
                continue
            if test_case.run_on_virtual_device:
                reason = TEST_NOT_EXECUTED
            elif test_case.runs_on_real_hardware:
                reason = real_hardware_reason
            else:
                reason = NOT_RUNNABLE
            by_reason.setdefault(reason, []).append(test_case)

        for reason, test_cases in by_reason.items():
            logger.info(f"{len(test_cases)} test case(s) not executed: {reason}")
            self._report_not_executed(test_cases, reason)
