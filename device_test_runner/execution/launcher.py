# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Generation of the launcher that runs a selection on a device.

The launcher tells the test host on the device which test classes and
methods to run, in which order, and which deployment configuration values
are available. The manifest generator writes that information as a YAML file
that is deployed next to the test binary.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from device_test_runner.catalog.collection import TestCaseSelection
from device_test_runner.catalog.test_case import TestCase
from device_test_runner.core.constants import LAUNCHER_DIRNAME
from device_test_runner.core.types import LogCallback, LoggingLevel
from device_test_runner.devices.test_device import TestDevice

logger = logging.getLogger(__name__)


@dataclass
class Launcher:
    """Artifacts to deploy to run a selection.

    Attributes:
        artifacts: Files to deploy, test binary first
        missing_configuration_keys: Per test case, the required deployment
            configuration keys that have no value on the device
    """

    artifacts: list[Path]
    missing_configuration_keys: dict[TestCase, list[str]] = field(default_factory=dict)


class LauncherGenerator(ABC):
    """Creates the launcher for a selection and a device."""

    @abstractmethod
    async def generate(
        self,
        selection: TestCaseSelection,
        device: TestDevice | None,
        log: LogCallback,
    ) -> Launcher:
        """Create the launcher.

        Args:
            selection: The test cases to run
            device: Description of the real hardware device, None for a virtual device
            log: Receives diagnostic messages; an error message means the
                launcher cannot be used

        Raises:
            Exception: If the launcher cannot be created
        """


class ManifestLauncherGenerator(LauncherGenerator):
    """Writes a YAML manifest of the selection for the test host."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir) / LAUNCHER_DIRNAME

    def generate_manifest_content(
        self, selection: TestCaseSelection, device: TestDevice | None
    ) -> tuple[dict[str, Any], dict[TestCase, list[str]]]:
        """Build the manifest and the missing configuration keys per test case."""
        configuration = device.deployment_configuration if device is not None else {}
        missing: dict[TestCase, list[str]] = {}
        used_keys: set[str] = set()
        groups: dict[int, dict[str, Any]] = {}

        for _, test_case in selection:
            keys = sorted(test_case.required_configuration_keys)
            absent = device.missing_configuration_keys(keys) if device is not None else keys
            if absent:
                missing[test_case] = absent
            used_keys.update(k for k in keys if k not in absent)

            group = test_case.group
            if group is None:
                raise ValueError(f"Test case '{test_case.fully_qualified_name}' has no test class")
            entry = groups.get(group.index)
            if entry is None:
                entry = groups[group.index] = {
                    "index": group.index,
                    "name": group.fully_qualified_name,
                    "instantiation": group.instantiation.value,
                    "setup_cleanup_per_case": group.setup_cleanup_per_case,
                    "setup": group.setup_method,
                    "cleanup": group.cleanup_method,
                    "tests": [],
                }
            entry["tests"].append(
                {
                    "method_index": test_case.method_index,
                    "name": test_case.fully_qualified_name.rsplit(".", 1)[-1],
                    "data_row": test_case.data_row_index,
                }
            )

        manifest = {
            "binary": str(selection.binary_path),
            "groups": list(groups.values()),
            "deployment_configuration": {k: configuration[k] for k in sorted(used_keys)},
        }
        return manifest, missing

    async def generate(
        self,
        selection: TestCaseSelection,
        device: TestDevice | None,
        log: LogCallback,
    ) -> Launcher:
        manifest, missing = self.generate_manifest_content(selection, device)
        path = self.output_dir / f"launcher_{uuid.uuid4().hex}.yaml"
        await asyncio.to_thread(self._write, path, manifest)
        log(LoggingLevel.DETAILED, f"Launcher for {selection.name} written to {path}")
        return Launcher([selection.binary_path, path], missing)

    @staticmethod
    def _write(path: Path, manifest: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(manifest, f, sort_keys=False)
