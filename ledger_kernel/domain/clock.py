"""
Time for the ledger kernel.

Services take a ``Clock`` instead of reading ``datetime.now()``, so token
expiry and verification timestamps can be pinned in tests.  The stores
keep timestamps as naive UTC; ``to_utc_naive`` and ``end_of_day`` convert
caller input (dates, aware or naive datetimes) into that form.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _as_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current instant, always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        return _as_aware_utc(self.now())

    def stored_now(self) -> datetime:
        """Current instant in the naive-UTC form written to the stores."""
        return to_utc_naive(self.now())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves through ``advance()`` or ``set_time()``.  Naive
    datetimes handed to it are read as UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_aware_utc(fixed_time or DEFAULT_TEST_EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = _as_aware_utc(value)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)


def to_utc_naive(value: date | datetime) -> datetime:
    """
    Normalize a date or datetime to the naive-UTC form stored in the ledger.

    A bare ``date`` becomes midnight of that day.  An aware ``datetime`` is
    converted to UTC and stripped of tzinfo; a naive one is assumed UTC.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value
    return _as_aware_utc(value).replace(tzinfo=None)


def end_of_day(value: date | datetime) -> datetime:
    """
    Cutoff for an inclusive as-of filter.

    A bare ``date`` is widened to the last microsecond of that day so that
    every transaction stamped on it is included.  A ``datetime`` is taken
    as the exact cutoff.
    """
    if isinstance(value, datetime):
        return to_utc_naive(value)
    return datetime.combine(value, time.max)
