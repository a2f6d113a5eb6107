# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Runs device tooling as a subprocess and streams its output."""

import asyncio
import codecs
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
TERMINATE_TIMEOUT = 5.0  # seconds before a terminated process is killed


class SubprocessRunner:
    """Executes a command and passes its output to a handler as it arrives."""

    def __init__(
        self,
        output_handler: Callable[[str], None],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ):
        """Initialize the subprocess runner.

        Args:
            output_handler: Function receiving chunks of decoded stdout/stderr
            cwd: Working directory of the process
            env: Additional environment variables for the process
        """
        self.output_handler = output_handler
        self.cwd = cwd
        self.env = env or {}

    async def run(self, cmd: Sequence[str], stop: asyncio.Event) -> int | None:
        """Run ``cmd`` until it exits or ``stop`` is set.

        Args:
            cmd: Command and arguments
            stop: Terminates the process when set

        Returns:
            Return code of the process, or None if it could not be started
            or was stopped
        """
        logger.info(f"Executing command: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env={**os.environ, **self.env},
                cwd=str(self.cwd) if self.cwd else None,
            )
        except OSError as e:
            logger.error(f"Cannot start '{cmd[0]}': {e}")
            return None

        reader = asyncio.create_task(self._process_output_realtime(process))
        stopper = asyncio.create_task(stop.wait())
        try:
            done, _ = await asyncio.wait(
                {reader, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            if reader not in done:
                logger.info(f"Stopping process {process.pid}")
                await self._terminate(process)
                await reader
                return None
            return await process.wait()
        finally:
            stopper.cancel()
            if not reader.done():
                reader.cancel()
            if process.returncode is None:
                await self._terminate(process)

    async def _process_output_realtime(self, process: asyncio.subprocess.Process) -> None:
        """Decode the output as UTF-8 and pass it on chunk by chunk.

        Characters split over chunks are kept for the next chunk.
        """
        if not process.stdout:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                self.output_handler(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self.output_handler(tail)

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Terminate the process, kill it if it does not exit in time."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), TERMINATE_TIMEOUT)
        except ProcessLookupError:
            return
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} did not terminate, killing it")
            process.kill()
            await process.wait()
