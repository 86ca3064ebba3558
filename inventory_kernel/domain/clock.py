"""
Injectable time source.

Scan, sale, delivery, warranty and resolution timestamps are all read from
a Clock handed to the services, never from ``datetime.now()``.  Tests pin
time with DeterministicClock so FIFO order and warranty expiry are exact.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    A naive start time is read as UTC.  ``now()`` is stable between calls,
    so two units scanned without an ``advance`` share a scan time and FIFO
    falls back to code order.
    """

    def __init__(self, start: datetime | None = None):
        self._now = _as_utc(start or datetime(2026, 1, 1, 9, 0, 0))

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward and return the new time."""
        self._now += timedelta(seconds=seconds)
        return self._now
