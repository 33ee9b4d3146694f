"""
Dependency injection interfaces for improved testability.

The scheduler never calls ``time`` or ``asyncio.sleep`` directly; it goes
through a Clock so cycle boundaries can be driven deterministically in tests.
"""

import asyncio
import time
from typing import List, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Protocol for time-related operations used by the scheduler."""

    def now(self) -> float:
        """Get current Unix timestamp."""
        ...

    def monotonic(self) -> float:
        """Get a monotonic reading for measuring durations."""
        ...

    async def sleep(self, duration: float) -> None:
        """Suspend for the given number of seconds."""
        ...


class SystemClock:
    """Production clock using system time and the running event loop."""

    def now(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, duration: float) -> None:
        await asyncio.sleep(duration)


class DeterministicClock:
    """Deterministic clock for testing: sleeping advances time instantly."""

    def __init__(self, start_time: float = 1640995200.0):  # 2022-01-01
        self._current_time = start_time
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._current_time

    def monotonic(self) -> float:
        return self._current_time

    async def sleep(self, duration: float) -> None:
        """Advance time by duration instead of actually sleeping."""
        self.sleeps.append(duration)
        self._current_time += duration
        # Yield so other tasks (e.g. a stop request) get a chance to run
        await asyncio.sleep(0)

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current time to specific timestamp."""
        self._current_time = timestamp
