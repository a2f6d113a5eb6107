# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt
from pathlib import Path

import pytest

from tests.unit.cli.cli_helpers import CATALOG


@pytest.fixture
def catalog(tmp_path: Path) -> Path:
    (tmp_path / "Device.Tests.bin").write_bytes(b"")
    path = tmp_path / "catalog.yaml"
    path.write_text(CATALOG)
    return path
