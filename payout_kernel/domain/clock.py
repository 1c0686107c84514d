"""
Clock -- injectable source of "now" for payout windows.

Every payout window ends at a value read from a Clock, once per seller.
Pipeline and store code take a Clock in their constructor and never call
``datetime.now()`` themselves; tests swap in a DeterministicClock or a
SequentialClock to pin window boundaries.

Failure modes:
    - Anything raised by ``now()`` (or a naive result) is treated by the
      snapshot selector as an unavailable clock for that seller only.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Returns timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """Wall-clock UTC time.  The only place the payout code reads real time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Stays at one instant until moved with ``advance`` or ``set_time``."""

    def __init__(self, fixed_time: datetime):
        self._current = fixed_time

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float | timedelta = 1) -> datetime:
        """Move forward and return the new time."""
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._current += step
        return self._current


class SequentialClock(Clock):
    """Hands out the given instants in order, then keeps returning the last.

    Used to give each seller of a run a different snapshot time, or to make
    the clock move backwards between reads.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._times = list(times)
        self._index = 0

    def now(self) -> datetime:
        value = self._times[min(self._index, len(self._times) - 1)]
        self._index += 1
        return value
