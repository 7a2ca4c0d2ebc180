"""
Clock -- injectable "now" for reconciliation runs.

Elapsed campaign days, active line items and media-buy status all depend on
today's date. Components take a Clock in their constructor instead of calling
``datetime.now()`` so a run can be replayed against a fixed date.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

REFERENCE_TIME = datetime(2025, 7, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current time. ``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """Calendar date of ``now()`` in UTC."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests and replays.

    Starts at ``start`` (default REFERENCE_TIME) and only moves when
    ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or REFERENCE_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int = 0, *, days: int = 0) -> None:
        self._current += timedelta(days=days, seconds=seconds)
