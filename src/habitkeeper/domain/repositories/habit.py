"""Habit store protocol.

Every call is an asynchronous round-trip that may fail. Failures are raised
as :class:`~habitkeeper.errors.StoreError` subclasses; a uniqueness violation
on ``insert_completion`` is always :class:`~habitkeeper.errors.DuplicateCompletion`.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Protocol

from ...models.habit import Habit, HabitCompletion


class HabitStore(Protocol):
    """Remote persistence for habits and their completion records."""

    async def list_habits(self, user_id: int) -> list[Habit]:
        """List the user's habits, newest first."""
        ...

    async def get_habit(self, habit_id: int, user_id: int) -> Optional[Habit]:
        """Fetch one habit, including any store-maintained streak counters."""
        ...

    async def insert_habit(self, user_id: int, fields: Mapping[str, Any]) -> Habit:
        """Create a habit from validated fields."""
        ...

    async def update_habit(self, habit_id: int, user_id: int, fields: Mapping[str, Any]) -> Habit:
        """Update editable fields and return the stored habit."""
        ...

    async def delete_habit(self, habit_id: int, user_id: int) -> None:
        """Delete a habit and, by cascade, its completion records."""
        ...

    async def list_completions(
        self, user_id: int, since: Optional[date] = None
    ) -> list[HabitCompletion]:
        """List completion records, optionally only those on or after ``since``."""
        ...

    async def insert_completion(self, habit_id: int, user_id: int, day: date) -> HabitCompletion:
        """Record a completion; raises DuplicateCompletion if one exists."""
        ...

    async def delete_completion(self, habit_id: int, user_id: int, day: date) -> None:
        """Remove the completion for ``day`` if present."""
        ...
