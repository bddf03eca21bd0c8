"""Injectable wall clock.

Components take a Clock at construction instead of calling time.time()
directly, so windows and TTLs can be tested with a fake clock.
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Source of the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Clock backed by the system wall clock."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000
