# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Core constants shared across the device-test-runner framework."""

# Scheduling
INVESTIGATION_POLL_INTERVAL = 0.1  # seconds a control loop waits for a deferred selection
EXECUTION_STOP_GRACE_PERIOD = 5.0  # seconds a stopped execution gets to return

# Timeouts (seconds, None = no limit)
DEFAULT_VIRTUAL_DEVICE_TIMEOUT: float | None = None
DEFAULT_REAL_HARDWARE_TIMEOUT: float | None = None

# Virtual devices
MAX_VIRTUAL_DEVICES_ENV_VAR = "DEVICE_TEST_MAX_VIRTUAL_DEVICES"

# Status stream
TICKS_PER_SECOND = 10_000_000

# Result message headings
DEPLOYMENT_CONFIGURATION_HEADING = "*** Deployment configuration ***"
DEVICE_INITIALIZATION_HEADING = "*** Device initialization ***"
DEPLOYMENT_OUTPUT_HEADING = "*** Deployment ***"
SETUP_OUTPUT_HEADING = "*** Setup ***"
CLEANUP_OUTPUT_HEADING = "*** Cleanup ***"

# Skip reasons
SELECTION_FAILED = "Real hardware test selection failed"
DEVICE_NOT_SUITABLE = "Real hardware device not suitable"
EQUIVALENT_DEVICE = "Already executed on an equivalent device"
NO_SUITABLE_REAL_HARDWARE = "No suitable real hardware device available"
NO_REAL_HARDWARE = "No real hardware devices available"
NOT_RUNNABLE = "Test is not configured to run on a virtual device or on real hardware"
REAL_HARDWARE_DISABLED = "Running tests on real hardware is disabled in the run configuration"
TEST_NOT_EXECUTED = "Test has not been executed"
TEST_NOT_RUN = "Test has not been run"
TEST_ABORTED = "Test execution was aborted"
FILTERED_BY_CONFIGURATION = "Filtered by run configuration"

# Output files
XUNIT_XML = "xunit.xml"
LAUNCHER_DIRNAME = "launchers"

# Exit codes
EXIT_FAILURE_CAP = 250
EXIT_ERROR = 255
EXIT_INVALID_ARGS = 2
