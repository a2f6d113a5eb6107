# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Result collection and reporting."""

from .collector import ResultCollector
from .xunit import write_xunit

__all__ = ["ResultCollector", "write_xunit"]
