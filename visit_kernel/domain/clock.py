"""
Injectable time source.

Coordinators, the orchestrator and the rate limiter read the time only
through a ``Clock``.  Credential expiry, check-in and check-out stamps and
visit durations therefore all come from one place, and tests can step a
``DeterministicClock`` across expiry and rate-limit windows.

Every ``now()`` is a timezone-aware UTC datetime.  Naive datetimes are
rejected with ValueError.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("Clock times must be timezone-aware")
    return value.astimezone(timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that moves only when told to.

    Starts at ``DEFAULT_START`` (2024-01-01 12:00 UTC) unless given a start
    time, and returns the same instant until moved.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(fixed_time or DEFAULT_START)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_minutes(self, minutes: int) -> None:
        self._current += timedelta(minutes=minutes)
