# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Exclusive access to real hardware devices.

A device behind a serial port supports a single session at a time. All
communication with a device is done while holding the lock for its serial
port.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class DeviceAccessLocks:
    """Named locks keyed by serial port.

    asyncio locks belong to one event loop, so a separate set of locks is
    kept per running loop.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def lock_for(self, serial_port: str) -> asyncio.Lock:
        """Return the lock of a serial port for the running event loop.

        Args:
            serial_port: Name of the port, e.g. COM3 or /dev/ttyUSB0

        Returns:
            The same lock for every call with the same port on the same loop
        """
        loop = asyncio.get_running_loop()
        locks = self._locks.setdefault(loop, {})
        if serial_port not in locks:
            locks[serial_port] = asyncio.Lock()
        return locks[serial_port]

    @asynccontextmanager
    async def exclusive(self, serial_port: str) -> AsyncIterator[None]:
        """Hold the lock for ``serial_port``; it is released on any exit."""
        lock = self.lock_for(serial_port)
        if lock.locked():
            logger.debug(f"Waiting for exclusive access to {serial_port}")
        async with lock:
            logger.debug(f"Acquired exclusive access to {serial_port}")
            yield


device_access = DeviceAccessLocks()
