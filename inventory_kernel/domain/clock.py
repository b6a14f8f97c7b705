"""
Time source for ledger, snapshot and shipment timestamps.

Services take a Clock instead of reading the wall clock so that tests can
pin ``created_at`` on ledger entries and ``shipped_at`` on fulfillments.
SystemClock is the only place the kernel asks the OS for the time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Pinned clock for tests.

    Every call to ``now()`` returns the same instant until ``advance()``
    moves it forward.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or _EPOCH

    def now(self) -> datetime:
        return self._current

    def advance(self, **delta: float) -> datetime:
        """Move forward by a timedelta given as keywords (``hours=2``)."""
        self._current += timedelta(**delta)
        return self._current
