# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

import logging
from pathlib import Path
from typing import Optional

import errorhandler
import typer
from typing_extensions import Annotated

import device_test_runner
from device_test_runner.catalog.collection import TestCaseCollection
from device_test_runner.catalog.loader import CatalogError, load_catalog
from device_test_runner.catalog.tag_matcher import TagMatcher
from device_test_runner.core.configuration import (
    ConfigurationError,
    RunConfiguration,
    load_run_configuration,
)
from device_test_runner.core.constants import EXIT_ERROR, EXIT_INVALID_ARGS, XUNIT_XML
from device_test_runner.core.types import LoggingLevel, TestResults
from device_test_runner.devices.command_device import CommandVirtualDevice
from device_test_runner.devices.discovery import InventoryDeviceDiscovery
from device_test_runner.execution.launcher import ManifestLauncherGenerator
from device_test_runner.execution.tests_runner import TestsRunner
from device_test_runner.reporting.collector import ResultCollector
from device_test_runner.reporting.xunit import write_xunit
from device_test_runner.utils.logging import VerbosityLevel, configure_logging
from device_test_runner.utils.terminal import terminal

app = typer.Typer(add_completion=False)

logger = logging.getLogger(__name__)

error_handler = errorhandler.ErrorHandler()


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"device-test, version {device_test_runner.__version__}")
        raise typer.Exit()


Verbosity = Annotated[
    VerbosityLevel,
    typer.Option(
        "-v",
        "--verbosity",
        help="Verbosity level.",
        envvar="DEVICE_TEST_VERBOSITY",
        is_eager=True,
    ),
]


Catalog = Annotated[
    Path,
    typer.Option(
        "-c",
        "--catalog",
        exists=True,
        dir_okay=False,
        file_okay=True,
        help="Path to the test case catalog YAML file.",
        envvar="DEVICE_TEST_CATALOG",
    ),
]


Config = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        exists=True,
        dir_okay=False,
        file_okay=True,
        help="Path to the run configuration YAML file.",
        envvar="DEVICE_TEST_CONFIG",
    ),
]


Inventory = Annotated[
    Optional[Path],
    typer.Option(
        "--inventory",
        exists=True,
        dir_okay=False,
        file_okay=True,
        help="Path to the inventory of real hardware devices.",
        envvar="DEVICE_TEST_INVENTORY",
    ),
]


Output = Annotated[
    Path,
    typer.Option(
        "-o",
        "--output",
        exists=False,
        dir_okay=True,
        file_okay=False,
        help="Path to output directory.",
        envvar="DEVICE_TEST_OUTPUT",
    ),
]


Include = Annotated[
    list[str],
    typer.Option(
        "-i",
        "--include",
        help="Selects the test cases by category (include).",
        envvar="DEVICE_TEST_INCLUDE",
    ),
]


Exclude = Annotated[
    list[str],
    typer.Option(
        "-e",
        "--exclude",
        help="Selects the test cases by category (exclude).",
        envvar="DEVICE_TEST_EXCLUDE",
    ),
]


Tests = Annotated[
    list[str],
    typer.Option(
        "-t",
        "--test",
        help="Fully qualified name of a test method to run; all tests are run if omitted.",
    ),
]


MaxVirtualDevices = Annotated[
    int,
    typer.Option(
        "--max-virtual-devices",
        help="Maximum number of virtual devices to run in parallel. If not specified, the number of logical processors is used.",
        envvar="DEVICE_TEST_MAX_VIRTUAL_DEVICES",
        min=1,
        max=500,
    ),
]


VirtualTimeout = Annotated[
    float,
    typer.Option(
        "--virtual-timeout",
        help="Seconds after which an execution on a virtual device is aborted.",
        envvar="DEVICE_TEST_VIRTUAL_TIMEOUT",
        min=0.001,
    ),
]


HardwareTimeout = Annotated[
    float,
    typer.Option(
        "--hardware-timeout",
        help="Seconds after which an execution on real hardware is aborted.",
        envvar="DEVICE_TEST_HARDWARE_TIMEOUT",
        min=0.001,
    ),
]


TestLogging = Annotated[
    Optional[str],
    typer.Option(
        "--test-logging",
        help="Level of the device and test messages added to the results (none, detailed, verbose, warning, error).",
        envvar="DEVICE_TEST_LOGGING",
    ),
]


Version = Annotated[
    bool,
    typer.Option(
        "--version",
        callback=version_callback,
        help="Display version number.",
        is_eager=True,
    ),
]


def _load_inputs(
    catalog: Path, config: Path | None, tests: list[str]
) -> tuple[TestCaseCollection, RunConfiguration]:
    try:
        collection = load_catalog(catalog, tests or None)
        configuration = load_run_configuration(config) if config else RunConfiguration()
    except (CatalogError, ConfigurationError) as e:
        typer.echo(terminal.error(f"Error: {e}"), err=True)
        raise typer.Exit(EXIT_INVALID_ARGS) from None
    return collection, configuration


@app.command()
def run(
    catalog: Catalog,
    output: Output = Path("device-test-results"),
    config: Config = None,
    inventory: Inventory = None,
    test: Tests = [],
    include: Include = [],
    exclude: Exclude = [],
    max_virtual_devices: Optional[MaxVirtualDevices] = None,
    virtual_timeout: Optional[VirtualTimeout] = None,
    hardware_timeout: Optional[HardwareTimeout] = None,
    test_logging: TestLogging = None,
    verbosity: Verbosity = VerbosityLevel.WARNING,
    version: Version = False,
) -> None:
    """Run the tests of a catalog on virtual devices and real hardware."""
    configure_logging(verbosity, error_handler)

    collection, configuration = _load_inputs(catalog, config, test)
    if max_virtual_devices is not None:
        configuration.max_virtual_devices = max_virtual_devices
    if virtual_timeout is not None:
        configuration.virtual_device_timeout = virtual_timeout
    if hardware_timeout is not None:
        configuration.real_hardware_timeout = hardware_timeout
    if test_logging is not None:
        try:
            configuration.logging = LoggingLevel.parse(test_logging)
        except ValueError as e:
            typer.echo(terminal.error(f"Error: {e}"), err=True)
            raise typer.Exit(EXIT_INVALID_ARGS) from None

    discovery = None
    if inventory is not None:
        try:
            discovery = InventoryDeviceDiscovery.from_file(inventory)
        except ConfigurationError as e:
            typer.echo(terminal.error(f"Error: {e}"), err=True)
            raise typer.Exit(EXIT_INVALID_ARGS) from None

    virtual_device_factory = None
    engine_path = configuration.virtual_engine_path
    if engine_path is not None:
        def virtual_device_factory() -> CommandVirtualDevice:
            return CommandVirtualDevice(engine_path, working_dir=output)

    output.mkdir(parents=True, exist_ok=True)
    collector = ResultCollector()
    runner = TestsRunner(
        collection,
        configuration,
        collector,
        ManifestLauncherGenerator(output),
        virtual_device_factory=virtual_device_factory,
        device_discovery=discovery,
        tag_matcher=TagMatcher(include, exclude) if include or exclude else None,
    )

    typer.echo(terminal.info(f"Running {len(collection)} test case(s) from {catalog}"))
    interrupted = False
    try:
        runner.run()
    except KeyboardInterrupt:
        interrupted = True

    summary = TestResults.from_error("Test run interrupted") if interrupted else collector.summary()
    write_xunit(collector.results_by_device(), output / XUNIT_XML)

    typer.echo(terminal.header("Test results"))
    typer.echo(terminal.format_summary(summary))
    exit(summary.exit_code)


@app.command("list")
def list_tests(
    catalog: Catalog,
    test: Tests = [],
    include: Include = [],
    exclude: Exclude = [],
    verbosity: Verbosity = VerbosityLevel.WARNING,
) -> None:
    """List the selections a run of the catalog would execute."""
    configure_logging(verbosity, error_handler)
    collection, _ = _load_inputs(catalog, None, test)
    if include or exclude:
        collection, excluded = collection.filtered(TagMatcher(include, exclude))
        if excluded:
            typer.echo(terminal.warning(f"{len(excluded)} test case(s) filtered by category"))

    for title, selections in (
        ("Virtual device", collection.virtual_device_selections),
        ("Real hardware", collection.real_hardware_selections),
    ):
        for selection in selections:
            typer.echo(terminal.bold(f"{title}: {selection.name} ({len(selection)} test case(s))"))
            for _, test_case in selection:
                typer.echo(f"  {test_case.display_name}")
    for test_case in collection.unassigned_test_cases:
        typer.echo(terminal.warning(f"Not runnable: {test_case.display_name}"))
    exit(0)


def exit(exit_code: int) -> None:
    if error_handler.fired:
        raise typer.Exit(EXIT_ERROR)
    raise typer.Exit(exit_code)
