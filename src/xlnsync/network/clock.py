"""
Clock abstraction for timers and pacing.

Every component that waits (reconnection delay, fallback tick, consensus
pacing) does so through a Clock, so tests can substitute one that does not
depend on wall-clock time.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of time and suspension for the sync engine."""

    def time(self) -> float:
        """Wall-clock time in seconds since the epoch."""
        ...

    def monotonic(self) -> float:
        """Monotonic time in seconds, for measuring intervals."""
        ...

    async def sleep(self, delay: float) -> None:
        """Suspend the calling task for ``delay`` seconds."""
        ...


class AsyncioClock:
    """Clock backed by the running asyncio event loop."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return time.monotonic()

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


def timestamp_ms(clock: Clock) -> int:
    """Wall-clock time in milliseconds, the unit used on the wire."""
    return int(clock.time() * 1000)


class ManualClock:
    """
    Clock that only moves when told to.

    ``sleep`` advances the clock by the requested delay and yields once to
    the event loop, so paced loops run to completion without real waiting
    while still recording the gaps they asked for.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self._now

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self._now += delay
        await asyncio.sleep(0)
