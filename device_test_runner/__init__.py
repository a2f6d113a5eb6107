# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("device-test-runner")
except PackageNotFoundError:
    # Package not installed in production mode
    __version__ = "0.1.0"
