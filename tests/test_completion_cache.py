"""Tests for the in-memory completion cache."""

from __future__ import annotations

from habitkeeper.models.habit import Habit, HabitCompletion
from habitkeeper.services.cache import CompletionCache, DerivedHabitView
from habitkeeper.services.streaks import StoredStreakSource

from .conftest import TODAY, USER_ID, days_ago


def _habit(habit_id: int, frequency: str = "daily") -> Habit:
    return Habit(id=habit_id, user_id=USER_ID, title=f"Habit {habit_id}", frequency=frequency)


def _record(habit_id: int, offset: int, record_id: int | None = None) -> HabitCompletion:
    return HabitCompletion(id=record_id, habit_id=habit_id, user_id=USER_ID, completed_on=days_ago(offset))


def _cache() -> CompletionCache:
    return CompletionCache(clock=lambda: TODAY)


def test_is_completed_today_membership():
    cache = _cache()
    cache.apply_insert(_record(1, 0))
    cache.apply_insert(_record(2, 1))
    assert cache.is_completed_today(1)
    assert not cache.is_completed_today(2)
    assert not cache.is_completed_today(404)


def test_duplicate_insert_replaces_instead_of_duplicating():
    cache = _cache()
    placeholder = _record(1, 0)
    confirmed = _record(1, 0, record_id=17)
    cache.apply_insert(placeholder)
    cache.apply_insert(confirmed)

    assert cache.completion_count() == 1
    assert cache.record_for(1, TODAY) is confirmed


def test_apply_remove_returns_record_and_never_raises():
    cache = _cache()
    record = _record(1, 0)
    cache.apply_insert(record)

    assert cache.apply_remove(1, TODAY) is record
    assert cache.apply_remove(1, TODAY) is None
    assert cache.apply_remove(99, TODAY) is None
    assert cache.completion_count() == 0


def test_recompute_builds_views_per_habit():
    cache = _cache()
    cache.replace_all([_record(1, 0), _record(1, 1), _record(1, 2), _record(2, 1), _record(2, 2)])

    views = cache.recompute([_habit(1), _habit(2), _habit(3)])

    assert views == [
        DerivedHabitView(is_completed_today=True, streak=3, longest_streak=3, due_today=True),
        DerivedHabitView(is_completed_today=False, streak=2, longest_streak=2, due_today=True),
        DerivedHabitView(is_completed_today=False, streak=0, longest_streak=0, due_today=True),
    ]
    assert cache.view(2).streak == 2


def test_recompute_marks_weekly_habits_not_due_on_other_days():
    cache = _cache()
    (view,) = cache.recompute([_habit(1, frequency="weekly")])
    assert view.due_today is False


def test_view_for_unknown_habit_is_empty():
    view = _cache().view(123)
    assert view.streak == 0
    assert view.is_completed_today is False


def test_drop_habit_removes_records_and_view():
    cache = _cache()
    cache.replace_all([_record(1, 0), _record(2, 0)])
    cache.recompute([_habit(1), _habit(2)])

    cache.drop_habit(1)

    assert not cache.is_completed_today(1)
    assert cache.dates_for(1) == set()
    assert cache.view(1).streak == 0
    assert cache.is_completed_today(2)


def test_replace_all_discards_previous_records():
    cache = _cache()
    cache.apply_insert(_record(1, 0))
    cache.replace_all([_record(2, 3)])
    assert cache.dates_for(1) == set()
    assert cache.dates_for(2) == {days_ago(3)}


def test_stored_source_reads_habit_counters():
    cache = CompletionCache(clock=lambda: TODAY, streak_source=StoredStreakSource())
    habit = _habit(1)
    habit.current_streak = 5
    habit.longest_streak = 12
    cache.apply_insert(_record(1, 0))

    (view,) = cache.recompute([habit])

    assert view.streak == 5
    assert view.longest_streak == 12
    assert view.is_completed_today is True


def test_view_is_recomputed_when_the_day_changes():
    today = [TODAY]
    cache = CompletionCache(clock=lambda: today[0])
    habit = _habit(1)
    cache.apply_insert(_record(1, 0))
    cache.recompute([habit])
    assert cache.view(1).is_completed_today is True

    today[0] = days_ago(-1)

    view = cache.view(1)
    assert view.is_completed_today is False
    assert view.streak == 1


def test_streak_step_applies_to_stored_counters_until_settled():
    cache = CompletionCache(clock=lambda: TODAY, streak_source=StoredStreakSource())
    habit = _habit(1)
    habit.current_streak = 4
    habit.longest_streak = 4
    cache.apply_insert(_record(1, 0))

    cache.shift_streak(1, 1)
    (view,) = cache.recompute([habit])
    assert (view.streak, view.longest_streak) == (5, 5)

    cache.settle_streak(1)
    (view,) = cache.recompute([habit])
    assert (view.streak, view.longest_streak) == (4, 4)


def test_streak_step_is_ignored_by_history_source():
    cache = _cache()
    habit = _habit(1)
    cache.apply_insert(_record(1, 0))

    cache.shift_streak(1, 1)
    (view,) = cache.recompute([habit])

    assert view.streak == 1
