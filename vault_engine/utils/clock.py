"""
Time sources for the engine.

Components take a zero-argument callable returning integer UNIX seconds.
Production code uses system_clock; simulations and tests drive a
ManualClock forward explicitly.
"""
import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current UNIX time in whole seconds."""
    return int(time.time())


class ManualClock:
    """
    Settable clock.

    Example:
        clock = ManualClock(start=1_700_000_000)
        clock.advance(3600)
        clock()  # 1_700_003_600
    """

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        self.now += seconds
        return self.now

    def set(self, timestamp: int) -> None:
        self.now = timestamp
