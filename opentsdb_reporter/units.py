"""Time units and clocks used for rate/duration conversion."""
from enum import Enum
import time


class TimeUnit(str, Enum):
    """Time unit names accepted in configuration."""
    NANOSECONDS = "nanoseconds"
    MICROSECONDS = "microseconds"
    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def nanos(self) -> int:
        """Length of one unit in nanoseconds."""
        return _NANOS[self]

    @property
    def seconds(self) -> float:
        """Length of one unit in seconds."""
        return _NANOS[self] / 1_000_000_000


_NANOS = {
    TimeUnit.NANOSECONDS: 1,
    TimeUnit.MICROSECONDS: 1_000,
    TimeUnit.MILLISECONDS: 1_000_000,
    TimeUnit.SECONDS: 1_000_000_000,
    TimeUnit.MINUTES: 60 * 1_000_000_000,
    TimeUnit.HOURS: 3_600 * 1_000_000_000,
    TimeUnit.DAYS: 86_400 * 1_000_000_000,
}


class Clock:
    """Wall-clock and monotonic time source."""

    def get_time(self) -> int:
        """Current wall-clock time in milliseconds since the epoch."""
        return time.time_ns() // 1_000_000

    def get_tick(self) -> int:
        """Monotonic tick in nanoseconds, only meaningful as a difference."""
        return time.monotonic_ns()


DEFAULT_CLOCK = Clock()
