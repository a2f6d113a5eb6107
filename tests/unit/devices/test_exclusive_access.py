# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for exclusive access to serial ports and execution control."""

import asyncio

from device_test_runner.devices.base import ExecutionControl
from device_test_runner.devices.exclusive_access import DeviceAccessLocks


class TestDeviceAccessLocks:
    def test_same_port_is_serialized(self) -> None:
        locks = DeviceAccessLocks()
        events: list[str] = []

        async def use(name: str, port: str) -> None:
            async with locks.exclusive(port):
                events.append(f"{name} start")
                await asyncio.sleep(0.02)
                events.append(f"{name} end")

        async def scenario() -> None:
            await asyncio.gather(use("a", "COM3"), use("b", "COM3"))

        asyncio.run(scenario())

        assert events == ["a start", "a end", "b start", "b end"]

    def test_different_ports_run_concurrently(self) -> None:
        locks = DeviceAccessLocks()
        events: list[str] = []

        async def use(name: str, port: str) -> None:
            async with locks.exclusive(port):
                events.append(f"{name} start")
                await asyncio.sleep(0.02)
                events.append(f"{name} end")

        async def scenario() -> None:
            await asyncio.gather(use("a", "COM3"), use("b", "COM4"))

        asyncio.run(scenario())

        assert events[:2] == ["a start", "b start"]

    def test_lock_released_on_error(self) -> None:
        locks = DeviceAccessLocks()

        async def scenario() -> bool:
            try:
                async with locks.exclusive("COM3"):
                    raise RuntimeError("deployment failed")
            except RuntimeError:
                pass
            return locks.lock_for("COM3").locked()

        assert asyncio.run(scenario()) is False

    def test_locks_per_event_loop(self) -> None:
        locks = DeviceAccessLocks()

        async def get_lock() -> asyncio.Lock:
            return locks.lock_for("COM3")

        assert asyncio.run(get_lock()) is not asyncio.run(get_lock())


class TestExecutionControl:
    def test_timeout_sets_stop(self) -> None:
        async def scenario() -> ExecutionControl:
            control = ExecutionControl(0.01)
            control.start_timeout()
            await asyncio.wait_for(control.stop_event.wait(), 5)
            return control

        control = asyncio.run(scenario())
        assert control.timed_out
        assert control.stopped

    def test_stop_before_timeout(self) -> None:
        async def scenario() -> ExecutionControl:
            control = ExecutionControl(0.05)
            control.start_timeout()
            control.stop()
            await asyncio.sleep(0.1)
            return control

        assert not asyncio.run(scenario()).timed_out

    def test_no_timeout_until_started(self) -> None:
        async def scenario() -> ExecutionControl:
            control = ExecutionControl(0.01)
            await asyncio.sleep(0.05)
            return control

        assert not asyncio.run(scenario()).stopped
