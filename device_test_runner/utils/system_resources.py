# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""System resource helpers used to size the virtual device pool."""

import logging
import os

import psutil

from device_test_runner.core.constants import MAX_VIRTUAL_DEVICES_ENV_VAR

logger = logging.getLogger(__name__)


class SystemResourceCalculator:
    """Calculates worker capacity from the resources of the machine."""

    @staticmethod
    def logical_processors() -> int:
        """Number of logical processors, at least 1."""
        return psutil.cpu_count(logical=True) or os.cpu_count() or 1

    @classmethod
    def calculate_virtual_device_capacity(
        cls,
        configured: int = 0,
        env_var: str = MAX_VIRTUAL_DEVICES_ENV_VAR,
    ) -> int:
        """Maximum number of virtual devices that may run in parallel.

        An integer in ``env_var`` takes precedence over ``configured``; a
        configured value of 0 means one virtual device per logical processor.

        Args:
            configured: Value from the run configuration
            env_var: Environment variable that overrides the configuration

        Returns:
            Number of virtual devices, at least 1
        """
        if env_value := os.environ.get(env_var):
            try:
                override = int(env_value)
                if override > 0:
                    return override
                logger.warning(f"Invalid {env_var} value '{env_value}', must be > 0")
            except ValueError:
                logger.warning(f"Invalid {env_var} value '{env_value}', must be an integer")

        if configured > 0:
            return configured
        return cls.logical_processors()
