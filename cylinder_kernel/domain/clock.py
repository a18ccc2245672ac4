"""
Clock and ledger-day boundaries.

A ledger day is a UTC calendar date.  Every balance row, fact window and
batch run date is expressed in those terms, and every "now" comes from an
injected ``Clock`` so recomputes and tests are reproducible.

Architecture position:
    Kernel > Domain.  Pure apart from SystemClock, the one place that
    reads the system time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone


class Clock(ABC):
    """Source of the current instant, injected into services and the runner."""

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current instant."""

    def today(self) -> date:
        """The current ledger day."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at ``start`` until moved with ``advance()``.

    Used by tests and replays so ``computed_at`` stamps and default run
    dates are predictable.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, days: int = 0) -> None:
        self._now += timedelta(days=days, seconds=seconds)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a ledger day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def end_of_day(day: date) -> datetime:
    """Last representable instant of a ledger day, for inclusive cutoffs."""
    return day_bounds(day)[1] - timedelta(microseconds=1)
