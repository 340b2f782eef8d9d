"""Tests for streak calculation and the due-date policy.

These cover:
- Runs ending today and runs ending yesterday (today still open)
- Gaps, including a fully skipped day
- Filtering records by habit and ignoring future days
- Longest historical run
- Weekly/monthly due days
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from habitkeeper.models.habit import Habit
from habitkeeper.services.streaks import (
    DuePolicy,
    HistoryStreakSource,
    StoredStreakSource,
    compute_streak,
    is_due_on,
    longest_streak,
    refresh_counters,
    streak_from_dates,
    streak_source_for,
)

from .conftest import TODAY, days_ago


def _records(habit_id: int, *offsets: int):
    return [SimpleNamespace(habit_id=habit_id, completed_on=days_ago(o)) for o in offsets]


class TestCurrentStreak:
    """Tests for the consecutive-day walk."""

    def test_no_completions_returns_zero(self):
        assert compute_streak(1, [], TODAY) == 0

    def test_single_completion_today_returns_one(self):
        assert compute_streak(1, _records(1, 0), TODAY) == 1

    @pytest.mark.parametrize("length", [1, 2, 7, 30])
    def test_unbroken_run_ending_today(self, length):
        assert compute_streak(1, _records(1, *range(length)), TODAY) == length

    def test_run_ending_yesterday_counts_while_today_is_open(self):
        """Completed day-2 and day-1, nothing today yet: streak is 2, not 0."""
        assert compute_streak(1, _records(1, 2, 1), TODAY) == 2

    def test_gap_before_yesterday_limits_streak(self):
        """Completed day-3 and day-1 with a gap at day-2: streak is 1."""
        assert compute_streak(1, _records(1, 3, 1), TODAY) == 1

    def test_gap_breaks_run_ending_today(self):
        assert compute_streak(1, _records(1, 0, 1, 3, 4), TODAY) == 2

    def test_fully_skipped_day_resets_streak(self):
        """Last completion two days ago: yesterday was skipped entirely."""
        assert compute_streak(1, _records(1, 2, 3, 4), TODAY) == 0

    def test_run_ended_before_yesterday_is_broken_but_kept_as_longest(self):
        dates = [r.completed_on for r in _records(1, 3, 2)]
        assert streak_from_dates(dates, TODAY) == 0
        assert longest_streak(dates) == 2

    def test_backfill_behind_gap_does_not_extend(self):
        records = _records(1, 0, 1) + _records(1, 5)
        assert compute_streak(1, records, TODAY) == 2

    def test_only_counts_requested_habit(self):
        records = _records(1, 0) + _records(2, 1, 2, 3)
        assert compute_streak(1, records, TODAY) == 1
        assert compute_streak(2, records, TODAY) == 3
        assert compute_streak(3, records, TODAY) == 0

    def test_future_completions_are_ignored(self):
        records = [SimpleNamespace(habit_id=1, completed_on=TODAY + timedelta(days=1))]
        assert compute_streak(1, records, TODAY) == 0

    def test_reference_datetime_is_truncated_to_day(self):
        late_evening = datetime(TODAY.year, TODAY.month, TODAY.day, 23, 59)
        assert compute_streak(1, _records(1, 0, 1), late_evening) == 2

    def test_month_and_year_boundaries(self):
        dates = [date(2023, 12, 30), date(2023, 12, 31), date(2024, 1, 1)]
        assert streak_from_dates(dates, date(2024, 1, 1)) == 3
        leap = [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
        assert streak_from_dates(leap, date(2024, 3, 1)) == 3

    def test_defaults_to_today(self):
        assert streak_from_dates([date.today()]) == 1


class TestLongestStreak:
    """Tests for the longest historical run."""

    def test_no_dates_returns_zero(self):
        assert longest_streak([]) == 0

    def test_multiple_runs_returns_longest(self):
        start = date(2024, 1, 1)
        dates = [start + timedelta(days=i) for i in range(3)]
        dates += [date(2024, 1, 10) + timedelta(days=i) for i in range(7)]
        dates += [date(2024, 1, 20) + timedelta(days=i) for i in range(4)]
        assert longest_streak(dates) == 7

    def test_duplicates_and_order_do_not_matter(self):
        dates = [date(2024, 1, 3), date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 2)]
        assert longest_streak(dates) == 3


class TestStreakSources:
    def test_history_source_uses_dates(self):
        habit = Habit(id=1, user_id=1, title="Read", current_streak=99)
        dates = {days_ago(0), days_ago(1), days_ago(5)}
        assert HistoryStreakSource().streaks(habit, dates, TODAY) == (2, 2)

    def test_stored_source_trusts_counters(self):
        habit = Habit(id=1, user_id=1, title="Read", current_streak=4, longest_streak=9)
        assert StoredStreakSource().streaks(habit, set(), TODAY) == (4, 9)

    def test_refresh_counters_sets_both_values(self):
        habit = Habit(id=1, user_id=1, title="Read")
        refresh_counters(habit, [days_ago(1), days_ago(2), days_ago(10), days_ago(11), days_ago(12)], TODAY)
        assert habit.current_streak == 2
        assert habit.longest_streak == 3

    def test_lookup_by_name(self):
        assert isinstance(streak_source_for("history"), HistoryStreakSource)
        assert isinstance(streak_source_for("stored"), StoredStreakSource)
        with pytest.raises(ValueError):
            streak_source_for("server")


class TestDuePolicy:
    def test_daily_always_due(self):
        assert all(is_due_on("daily", TODAY + timedelta(days=i)) for i in range(7))

    def test_weekly_due_on_configured_weekday(self):
        sunday = date(2024, 3, 17)
        assert is_due_on("weekly", sunday)
        assert not is_due_on("weekly", TODAY)
        assert is_due_on("weekly", TODAY, weekly_weekday=TODAY.weekday())

    def test_monthly_due_on_last_day_by_default(self):
        assert is_due_on("monthly", date(2024, 2, 29))
        assert not is_due_on("monthly", date(2024, 2, 28))
        assert is_due_on("monthly", date(2023, 2, 28))

    def test_monthly_day_clamped_to_short_months(self):
        policy = DuePolicy(monthly_day=31)
        assert policy.is_due("monthly", date(2024, 4, 30))
        assert policy.is_due("monthly", date(2024, 5, 31))
        assert not policy.is_due("monthly", date(2024, 5, 30))

    def test_unknown_frequency_is_treated_as_due(self):
        assert is_due_on("fortnightly", TODAY)

    def test_frequency_is_case_insensitive(self):
        assert is_due_on("Weekly", date(2024, 3, 17))
