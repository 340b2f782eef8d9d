"""Dictionary-backed habit store.

Used for guest sessions and tests. It enforces the same (habit, day)
uniqueness rule as the SQL schema and supports fault injection and gating so
callers can observe state while a call is suspended.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict, deque
from datetime import date
from typing import Any, Callable, Mapping, Optional, TypeVar

from ...errors import DuplicateCompletion, RemoteRejected, StoreError
from ...logging_config import get_logger
from ...models.habit import EDITABLE_HABIT_FIELDS, Habit, HabitCompletion
from ...services.streaks import refresh_counters

logger = get_logger(__name__)

_M = TypeVar("_M", Habit, HabitCompletion)


def _clone(obj: _M) -> _M:
    """Hand out detached copies so callers never share store rows."""

    return type(obj)(**obj.model_dump())


class InMemoryHabitStore:
    """In-memory implementation of :class:`HabitStore`."""

    def __init__(self, clock: Callable[[], date] = date.today):
        self._clock = clock
        self._habits: dict[int, Habit] = {}
        self._completions: dict[tuple[int, date], HabitCompletion] = {}
        self._habit_ids = itertools.count(1)
        self._completion_ids = itertools.count(1)
        self._failures: dict[str, deque[StoreError]] = defaultdict(deque)
        self._gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------
    def fail_next(self, operation: str, error: StoreError) -> None:
        """Make the next call to ``operation`` raise ``error``."""

        self._failures[operation].append(error)

    def hold(self, operation: str) -> asyncio.Event:
        """Suspend calls to ``operation`` until the returned event is set."""

        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def release(self, operation: str) -> None:
        gate = self._gates.pop(operation, None)
        if gate is not None:
            gate.set()

    async def _round_trip(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        queued = self._failures.get(operation)
        if queued:
            raise queued.popleft()

    def calls_to(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    # ------------------------------------------------------------------
    # Seeding helpers (synchronous, bypass the round trip)
    # ------------------------------------------------------------------
    def seed_habit(self, user_id: int, **fields: Any) -> Habit:
        habit = Habit(id=next(self._habit_ids), user_id=user_id, **fields)
        self._habits[habit.id] = habit
        return _clone(habit)

    def seed_completion(self, habit_id: int, user_id: int, day: date) -> HabitCompletion:
        record = HabitCompletion(
            id=next(self._completion_ids), habit_id=habit_id, user_id=user_id, completed_on=day
        )
        self._completions[(habit_id, day)] = record
        self._refresh_counters(habit_id)
        return _clone(record)

    def completion_dates(self, habit_id: int) -> set[date]:
        return {day for (hid, day) in self._completions if hid == habit_id}

    # ------------------------------------------------------------------
    # HabitStore protocol
    # ------------------------------------------------------------------
    def _owned(self, habit_id: int, user_id: int) -> Habit:
        habit = self._habits.get(habit_id)
        if habit is None or habit.user_id != user_id:
            raise RemoteRejected(f"Habit {habit_id} not found for user {user_id}")
        return habit

    def _refresh_counters(self, habit_id: int) -> None:
        habit = self._habits.get(habit_id)
        if habit is not None:
            refresh_counters(habit, self.completion_dates(habit_id), self._clock())

    async def list_habits(self, user_id: int) -> list[Habit]:
        await self._round_trip("list_habits", user_id)
        rows = [h for h in self._habits.values() if h.user_id == user_id]
        rows.sort(key=lambda h: (h.created_at, h.id or 0), reverse=True)
        return [_clone(h) for h in rows]

    async def get_habit(self, habit_id: int, user_id: int) -> Optional[Habit]:
        await self._round_trip("get_habit", habit_id, user_id)
        habit = self._habits.get(habit_id)
        if habit is None or habit.user_id != user_id:
            return None
        return _clone(habit)

    async def insert_habit(self, user_id: int, fields: Mapping[str, Any]) -> Habit:
        await self._round_trip("insert_habit", user_id, dict(fields))
        habit = Habit(id=next(self._habit_ids), user_id=user_id, **dict(fields))
        self._habits[habit.id] = habit
        logger.debug("Stored habit in memory", extra={"habit_id": habit.id, "user_id": user_id})
        return _clone(habit)

    async def update_habit(self, habit_id: int, user_id: int, fields: Mapping[str, Any]) -> Habit:
        await self._round_trip("update_habit", habit_id, user_id, dict(fields))
        habit = self._owned(habit_id, user_id)
        for key, value in fields.items():
            if key in EDITABLE_HABIT_FIELDS:
                setattr(habit, key, value)
        return _clone(habit)

    async def delete_habit(self, habit_id: int, user_id: int) -> None:
        await self._round_trip("delete_habit", habit_id, user_id)
        self._owned(habit_id, user_id)
        del self._habits[habit_id]
        for key in [k for k in self._completions if k[0] == habit_id]:
            del self._completions[key]

    async def list_completions(
        self, user_id: int, since: Optional[date] = None
    ) -> list[HabitCompletion]:
        await self._round_trip("list_completions", user_id, since)
        rows = [
            c
            for c in self._completions.values()
            if c.user_id == user_id and (since is None or c.completed_on >= since)
        ]
        rows.sort(key=lambda c: (c.habit_id, c.completed_on))
        return [_clone(c) for c in rows]

    async def insert_completion(self, habit_id: int, user_id: int, day: date) -> HabitCompletion:
        await self._round_trip("insert_completion", habit_id, user_id, day)
        self._owned(habit_id, user_id)
        if (habit_id, day) in self._completions:
            raise DuplicateCompletion(habit_id, day)
        record = HabitCompletion(
            id=next(self._completion_ids), habit_id=habit_id, user_id=user_id, completed_on=day
        )
        self._completions[(habit_id, day)] = record
        self._refresh_counters(habit_id)
        return _clone(record)

    async def delete_completion(self, habit_id: int, user_id: int, day: date) -> None:
        await self._round_trip("delete_completion", habit_id, user_id, day)
        self._owned(habit_id, user_id)
        self._completions.pop((habit_id, day), None)
        self._refresh_counters(habit_id)
