"""
Clock abstraction for the relay's blocking waits

The idle batching window and the confirmation backoff both sleep through a
Clock so the cycle can be driven in tests without real time elapsing.
"""

import time
from typing import List, Protocol


class Clock(Protocol):
    """Time source used by the scheduler and the confirmer"""

    def monotonic(self) -> float:
        ...

    def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Production clock backed by time.monotonic() and time.sleep()"""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """
    Clock that advances only when slept on

    Every sleep is recorded, so callers can assert on the exact wait pattern:

        clock = ManualClock()
        clock.sleep(30)
        assert clock.sleeps == [30]
        assert clock.monotonic() == 30
    """

    def __init__(self, start: float = 0.0):
        self._current = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._current += seconds

    def advance(self, seconds: float) -> None:
        """Move time forward without recording a sleep"""
        self._current += seconds

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)
