"""Streak calculation and the due-date policy for habit frequencies."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Protocol

from ..models.habit import Frequency, Habit


class _CompletionLike(Protocol):
    habit_id: int
    completed_on: date


def _as_day(value: date) -> date:
    """Truncate datetimes to their calendar day."""

    if isinstance(value, datetime):
        return value.date()
    return value


def streak_from_dates(dates: Iterable[date], reference_date: Optional[date] = None) -> int:
    """Count consecutive completed days ending today, or yesterday if today is open.

    An open today does not break a streak; a fully skipped day does. So a run
    that ended before yesterday is already broken and yields 0 rather than its
    length, which ``longest_streak`` still reports. Dates after
    ``reference_date`` are ignored.
    """

    today = _as_day(reference_date or date.today())
    days = {_as_day(d) for d in dates}
    if not days:
        return 0

    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def compute_streak(
    habit_id: int,
    completions: Iterable[_CompletionLike],
    reference_date: Optional[date] = None,
) -> int:
    """Return the current streak for ``habit_id`` from mixed completion records."""

    dates = [c.completed_on for c in completions if c.habit_id == habit_id]
    return streak_from_dates(dates, reference_date)


def longest_streak(dates: Iterable[date]) -> int:
    """Return the longest run of consecutive days in ``dates``."""

    longest = 0
    run = 0
    last_day: date | None = None
    for day in sorted({_as_day(d) for d in dates}):
        if last_day is not None and day == last_day + timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        last_day = day
    return longest


def refresh_counters(habit: Habit, dates: Iterable[date], today: date) -> Habit:
    """Write current/longest streak counters onto a stored habit."""

    days = list(dates)
    habit.current_streak = streak_from_dates(days, today)
    habit.longest_streak = longest_streak(days)
    return habit


def is_due_on(
    frequency: str,
    day: date,
    *,
    weekly_weekday: int = 6,
    monthly_day: int = -1,
) -> bool:
    """Return True when a habit with ``frequency`` is due on ``day``.

    Weekly habits are due on one weekday (0=Monday, default Sunday). Monthly
    habits are due on one day of the month; -1 means the last day, and a day
    past the end of a short month falls back to its last day.
    """

    try:
        freq = Frequency(str(frequency).lower())
    except ValueError:
        return True
    if freq is Frequency.DAILY:
        return True
    if freq is Frequency.WEEKLY:
        return day.weekday() == weekly_weekday
    last_day = calendar.monthrange(day.year, day.month)[1]
    target = last_day if monthly_day == -1 else min(monthly_day, last_day)
    return day.day == target


@dataclass(frozen=True)
class DuePolicy:
    """Configured weekday/day-of-month on which non-daily habits fall due."""

    weekly_weekday: int = 6
    monthly_day: int = -1

    def is_due(self, frequency: str, day: date) -> bool:
        return is_due_on(
            frequency, day, weekly_weekday=self.weekly_weekday, monthly_day=self.monthly_day
        )


class StreakSource(Protocol):
    """Where a habit's streak numbers come from."""

    name: str
    # True when counters must be re-read from the store after a write
    refreshes_from_store: bool

    def streaks(self, habit: Habit, dates: set[date], today: date) -> tuple[int, int]:
        """Return (current, longest) for ``habit``."""
        ...


class HistoryStreakSource:
    """Recompute streaks from the cached completion history."""

    name = "history"
    refreshes_from_store = False

    def streaks(self, habit: Habit, dates: set[date], today: date) -> tuple[int, int]:
        return streak_from_dates(dates, today), longest_streak(dates)


class StoredStreakSource:
    """Trust the counters the store maintains on the habit record."""

    name = "stored"
    refreshes_from_store = True

    def streaks(self, habit: Habit, dates: set[date], today: date) -> tuple[int, int]:
        return max(habit.current_streak or 0, 0), max(habit.longest_streak or 0, 0)


def streak_source_for(name: str) -> StreakSource:
    """Return the streak source registered under ``name``."""

    if name == HistoryStreakSource.name:
        return HistoryStreakSource()
    if name == StoredStreakSource.name:
        return StoredStreakSource()
    raise ValueError(f"Unknown streak source: {name}")


__all__ = [
    "DuePolicy",
    "HistoryStreakSource",
    "StoredStreakSource",
    "StreakSource",
    "compute_streak",
    "is_due_on",
    "longest_streak",
    "refresh_counters",
    "streak_from_dates",
    "streak_source_for",
]
