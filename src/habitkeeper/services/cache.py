"""In-memory completion cache and derived per-habit views."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional

from ..models.habit import Habit, HabitCompletion
from .streaks import DuePolicy, HistoryStreakSource, StreakSource


@dataclass(frozen=True)
class DerivedHabitView:
    """Computed, non-authoritative state for one habit."""

    is_completed_today: bool = False
    streak: int = 0
    longest_streak: int = 0
    due_today: bool = True


class CompletionCache:
    """Completion records for one user, keyed by habit id then day.

    All operations are synchronous and never touch a store.
    """

    def __init__(
        self,
        clock: Callable[[], date] = date.today,
        streak_source: Optional[StreakSource] = None,
        due_policy: Optional[DuePolicy] = None,
    ):
        self._clock = clock
        self.streak_source: StreakSource = streak_source or HistoryStreakSource()
        self.due_policy = due_policy or DuePolicy()
        self._records: dict[int, dict[date, HabitCompletion]] = {}
        self._views: dict[int, DerivedHabitView] = {}
        # Habit rows and the day each view was computed for
        self._habits: dict[int, Habit] = {}
        self._computed_on: dict[int, date] = {}
        # Optimistic change to a store-maintained streak counter, per habit
        self._streak_shift: dict[int, int] = {}

    def today(self) -> date:
        return self._clock()

    # Queries ----------------------------------------------------------
    def is_completed_today(self, habit_id: int) -> bool:
        return self.today() in self._records.get(habit_id, {})

    def dates_for(self, habit_id: int) -> set[date]:
        return set(self._records.get(habit_id, {}))

    def record_for(self, habit_id: int, day: date) -> Optional[HabitCompletion]:
        return self._records.get(habit_id, {}).get(day)

    def records(self) -> list[HabitCompletion]:
        return [r for by_day in self._records.values() for r in by_day.values()]

    def completion_count(self) -> int:
        return sum(len(by_day) for by_day in self._records.values())

    def view(self, habit_id: int) -> DerivedHabitView:
        """Return the view for today, or an empty one for unknown ids.

        A view computed on an earlier day is recomputed first.
        """
        habit = self._habits.get(habit_id)
        if habit is None:
            return DerivedHabitView(due_today=False)
        if self._computed_on.get(habit_id) != self.today():
            self.recompute([habit])
        return self._views[habit_id]

    # Mutations --------------------------------------------------------
    def replace_all(self, records: Iterable[HabitCompletion]) -> None:
        self.clear()
        for record in records:
            self.apply_insert(record)

    def apply_insert(self, record: HabitCompletion) -> None:
        """Insert or replace the record for its (habit, day) pair."""
        self._records.setdefault(record.habit_id, {})[record.completed_on] = record

    def apply_remove(self, habit_id: int, day: date) -> Optional[HabitCompletion]:
        """Remove and return the record for (habit, day), if cached."""
        by_day = self._records.get(habit_id)
        if not by_day:
            return None
        removed = by_day.pop(day, None)
        if not by_day:
            del self._records[habit_id]
        return removed

    def shift_streak(self, habit_id: int, delta: int) -> None:
        """Hold an unconfirmed +1/-1 on top of a store-maintained counter.

        Only sources that read counters from the store use it; history based
        sources already see the optimistic record.
        """
        if self.streak_source.refreshes_from_store:
            self._streak_shift[habit_id] = delta

    def settle_streak(self, habit_id: int) -> None:
        self._streak_shift.pop(habit_id, None)

    def drop_habit(self, habit_id: int) -> None:
        for mapping in (self._records, self._views, self._habits, self._computed_on, self._streak_shift):
            mapping.pop(habit_id, None)

    def clear(self) -> None:
        for mapping in (self._records, self._views, self._habits, self._computed_on, self._streak_shift):
            mapping.clear()

    def recompute(self, habits: Iterable[Habit]) -> list[DerivedHabitView]:
        """Recompute and store the derived view of each habit."""

        today = self.today()
        views: list[DerivedHabitView] = []
        for habit in habits:
            dates = self.dates_for(habit.id)
            current, longest = self.streak_source.streaks(habit, dates, today)
            shift = self._streak_shift.get(habit.id, 0)
            if shift:
                current = max(current + shift, 0)
                longest = max(longest, current)
            view = DerivedHabitView(
                is_completed_today=today in dates,
                streak=current,
                longest_streak=longest,
                due_today=self.due_policy.is_due(habit.frequency, today),
            )
            self._views[habit.id] = view
            self._habits[habit.id] = habit
            self._computed_on[habit.id] = today
            views.append(view)
        return views


__all__ = ["CompletionCache", "DerivedHabitView"]
