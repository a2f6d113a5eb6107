# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Unit tests for SubprocessRunner."""

import asyncio
import sys
from pathlib import Path

from device_test_runner.devices.subprocess_runner import SubprocessRunner


class TestSubprocessRunner:
    def test_streams_output_and_returns_exit_code(self, tmp_path: Path) -> None:
        chunks: list[str] = []
        runner = SubprocessRunner(chunks.append, cwd=tmp_path, env={"DEVICE_TEST_GREETING": "hello"})
        script = "import os, sys; print(os.environ['DEVICE_TEST_GREETING']); print('bye', file=sys.stderr); sys.exit(3)"

        return_code = asyncio.run(runner.run([sys.executable, "-u", "-c", script], asyncio.Event()))

        assert return_code == 3
        output = "".join(chunks).splitlines()
        assert output == ["hello", "bye"]

    def test_stop_terminates_process(self) -> None:
        chunks: list[str] = []
        runner = SubprocessRunner(chunks.append)

        async def scenario() -> int | None:
            stop = asyncio.Event()
            run = asyncio.create_task(
                runner.run([sys.executable, "-c", "import time; print('started', flush=True); time.sleep(60)"], stop)
            )
            while not chunks:
                await asyncio.sleep(0.01)
            stop.set()
            return await asyncio.wait_for(run, 10)

        assert asyncio.run(scenario()) is None
        assert "started" in "".join(chunks)

    def test_missing_executable(self, tmp_path: Path) -> None:
        runner = SubprocessRunner(lambda _: None)

        return_code = asyncio.run(runner.run([str(tmp_path / "missing-engine")], asyncio.Event()))

        assert return_code is None
