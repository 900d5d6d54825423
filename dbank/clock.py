"""
Clock Module

Nanosecond time sources. The engine never reads the system time directly;
every timestamp comes from a Clock.
"""

from abc import ABC, abstractmethod
import time


NANOS_PER_SECOND = 1_000_000_000


class Clock(ABC):
    """Abstract wall-clock time source"""

    @abstractmethod
    def now(self) -> int:
        """Current time in nanoseconds since the epoch"""
        pass


class SystemClock(Clock):
    """Wall clock that never goes backwards within a process"""

    def __init__(self):
        self._last = 0

    def now(self) -> int:
        current = time.time_ns()
        # Wall time can step back (NTP); hold the last value instead.
        if current < self._last:
            current = self._last
        self._last = current
        return current


class ManualClock(Clock):
    """Deterministic clock driven by the caller (tests, replays)"""

    def __init__(self, start_ns: int = 0):
        self._now = start_ns

    def now(self) -> int:
        return self._now

    def advance(self, seconds: float = 0, days: float = 0, nanos: int = 0) -> int:
        """Move the clock forward and return the new time"""
        delta = int((seconds + days * 86400) * NANOS_PER_SECOND) + nanos
        if delta < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += delta
        return self._now

    def set(self, now_ns: int) -> None:
        """Jump to an absolute time, never earlier than the current one"""
        if now_ns < self._now:
            raise ValueError("Clock cannot move backwards")
        self._now = now_ns
