"""Habit store engine: optimistic commands over a cached completion history.

The engine is the only caller of the :class:`HabitStore`. Every command
applies its local change first, awaits the store, then confirms or rolls the
change back, so the cache and the store agree once the command returns.
Commands on the same habit are queued behind one ``asyncio.Lock`` per habit
id; commands on different habits run concurrently.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..domain.repositories import HabitStore
from ..errors import (
    DuplicateCompletion,
    NotAuthenticated,
    RemoteUnavailable,
    StoreError,
    ValidationFailure,
)
from ..logging_config import get_logger
from ..models.habit import EDITABLE_HABIT_FIELDS, Habit, HabitCompletion
from .cache import CompletionCache, DerivedHabitView
from .mutations import MutationKind, PendingMutation
from .streaks import DuePolicy, StreakSource
from .validation import clean_habit_fields

logger = get_logger(__name__)

_HISTORY_LIMIT = 100


class CommandStatus(str, Enum):
    OK = "ok"
    DUPLICATE = "duplicate"
    NOT_AUTHENTICATED = "not_authenticated"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command, ready for the presentation layer to render."""

    status: CommandStatus
    message: str = ""
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        """True unless the caller has a failure to show.

        A duplicate completion is benign: the habit is done for today.
        """
        return self.status in (CommandStatus.OK, CommandStatus.DUPLICATE)


@dataclass(frozen=True)
class HabitState:
    """A habit together with its derived view."""

    habit: Habit
    view: DerivedHabitView

    @property
    def id(self) -> int:
        return self.habit.id  # type: ignore[return-value]


@dataclass(frozen=True)
class DailySummary:
    """Progress over the habits due on one day."""

    day: date
    due: list[HabitState] = field(default_factory=list)
    not_due: list[HabitState] = field(default_factory=list)
    completed: int = 0
    best_streak: Optional[HabitState] = None

    @property
    def total(self) -> int:
        return len(self.due)

    @property
    def percent(self) -> float:
        return (self.completed / self.total) * 100 if self.total else 0.0


def _ok(message: str = "", value: Any = None) -> CommandResult:
    return CommandResult(CommandStatus.OK, message, value)


def _failed(message: str, error: Exception) -> CommandResult:
    return CommandResult(CommandStatus.FAILED, message, error=error)


class HabitStoreEngine:
    """Read model and command set for one user's habits."""

    def __init__(
        self,
        store: HabitStore,
        *,
        clock: Callable[[], date] = date.today,
        streak_source: Optional[StreakSource] = None,
        due_policy: Optional[DuePolicy] = None,
        history_days: int = 0,
    ):
        self.store = store
        self.cache = CompletionCache(clock, streak_source, due_policy)
        self.history_days = history_days
        self.user_id: Optional[int] = None
        self.loading = False
        self.in_flight: dict[int, PendingMutation] = {}
        self.history: deque[PendingMutation] = deque(maxlen=_HISTORY_LIMIT)
        self._habits: list[Habit] = []
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------
    @property
    def habits(self) -> list[HabitState]:
        return [HabitState(h, self.cache.view(h.id)) for h in self._habits]  # type: ignore[arg-type]

    def get(self, habit_id: int) -> Optional[HabitState]:
        habit = self._find(habit_id)
        if habit is None:
            return None
        return HabitState(habit, self.cache.view(habit_id))

    def is_completed_today(self, habit_id: int) -> bool:
        return self.cache.is_completed_today(habit_id)

    def daily_summary(self) -> DailySummary:
        states = self.habits
        due = [s for s in states if s.view.due_today]
        not_due = [s for s in states if not s.view.due_today]
        best = max(states, key=lambda s: s.view.streak, default=None)
        return DailySummary(
            day=self.cache.today(),
            due=due,
            not_due=not_due,
            completed=sum(1 for s in due if s.view.is_completed_today),
            best_streak=best if best is not None and best.view.streak > 0 else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def load(self, user_id: Optional[int]) -> CommandResult:
        """Fetch the user's habits and completion history into the cache."""

        self.loading = True
        try:
            if user_id is None:
                self.reset()
                logger.warning("Load skipped: no user session")
                return CommandResult(
                    CommandStatus.NOT_AUTHENTICATED,
                    "You must be signed in to see your habits.",
                    error=NotAuthenticated("No user session"),
                )

            today = self.cache.today()
            since = today - timedelta(days=self.history_days) if self.history_days else None
            try:
                habits = await self.store.list_habits(user_id)
                completions = await self.store.list_completions(user_id, since)
            except Exception as exc:  # noqa: BLE001 - a failed load leaves an empty state
                error = self._as_store_error(exc, "load")
                self.reset()
                logger.warning("Failed to load habits", extra={"user_id": user_id, "error": str(error)})
                return _failed("Could not load your habits.", error)

            self.user_id = user_id
            self._habits = list(habits)
            self.cache.replace_all(completions)
            self.cache.recompute(self._habits)
            logger.info(
                "Habits loaded",
                extra={
                    "user_id": user_id,
                    "habits": len(self._habits),
                    "completions": self.cache.completion_count(),
                },
            )
            return _ok(value=self.habits)
        finally:
            self.loading = False

    def reset(self) -> None:
        """Forget the user and everything cached for them."""

        self.user_id = None
        self._habits = []
        self.cache.clear()
        self.in_flight.clear()
        # Locks stay: a command started before the reset may still hold one

    # ------------------------------------------------------------------
    # Completion commands
    # ------------------------------------------------------------------
    async def mark_complete(self, habit_id: int) -> CommandResult:
        """Mark ``habit_id`` done for today, optimistically."""

        precheck = self._precheck(habit_id)
        if precheck is not None:
            return precheck

        async with self._locks[habit_id]:
            habit = self._find(habit_id)
            if habit is None or self.user_id is None:
                return self._missing(habit_id)
            today = self.cache.today()
            if self.cache.is_completed_today(habit_id):
                logger.info("Habit already completed today", extra={"habit_id": habit_id})
                return CommandResult(CommandStatus.DUPLICATE, "You've already completed this habit today!")

            placeholder = HabitCompletion(habit_id=habit_id, user_id=self.user_id, completed_on=today)
            mutation = self._begin(MutationKind.MARK, habit_id, today)
            self.cache.apply_insert(placeholder)
            self.cache.shift_streak(habit_id, 1)
            self._recompute(habit)
            logger.debug("Optimistic completion applied", extra={"habit_id": habit_id, "day": today})

            mutation.dispatch()
            try:
                confirmed = await self.store.insert_completion(habit_id, self.user_id, today)
            except DuplicateCompletion:
                # The store already holds today's record; keep showing it.
                mutation.confirm()
                self._finish(mutation)
                logger.info("Store reported duplicate completion", extra={"habit_id": habit_id})
                await self._refresh_stored_counters(habit_id)
                return CommandResult(CommandStatus.DUPLICATE, "You've already completed this habit today!")
            except asyncio.CancelledError:
                self._undo_insert(habit, placeholder, mutation)
                raise
            except Exception as exc:  # noqa: BLE001 - every other failure rolls back
                error = self._as_store_error(exc, "insert_completion")
                self._undo_insert(habit, placeholder, mutation)
                logger.warning(
                    "Completion rolled back", extra={"habit_id": habit_id, "error": str(error)}
                )
                return _failed("Failed to log habit completion.", error)

            if self.cache.record_for(habit_id, today) is placeholder:
                self.cache.apply_insert(confirmed)
            mutation.confirm()
            self._finish(mutation)
            await self._refresh_stored_counters(habit_id)
            return _ok(value=confirmed)

    async def unmark_complete(self, habit_id: int) -> CommandResult:
        """Undo today's completion of ``habit_id``, optimistically."""

        precheck = self._precheck(habit_id)
        if precheck is not None:
            return precheck

        async with self._locks[habit_id]:
            habit = self._find(habit_id)
            if habit is None or self.user_id is None:
                return self._missing(habit_id)
            today = self.cache.today()
            removed = self.cache.apply_remove(habit_id, today)
            if removed is None:
                return _ok("Habit was not completed today.")

            mutation = self._begin(MutationKind.UNMARK, habit_id, today)
            self.cache.shift_streak(habit_id, -1)
            self._recompute(habit)
            logger.debug("Optimistic un-completion applied", extra={"habit_id": habit_id, "day": today})

            mutation.dispatch()
            try:
                await self.store.delete_completion(habit_id, self.user_id, today)
            except asyncio.CancelledError:
                self._undo_remove(habit, removed, mutation)
                raise
            except Exception as exc:  # noqa: BLE001 - every failure rolls back
                error = self._as_store_error(exc, "delete_completion")
                self._undo_remove(habit, removed, mutation)
                logger.warning(
                    "Un-completion rolled back", extra={"habit_id": habit_id, "error": str(error)}
                )
                return _failed("Failed to remove habit completion.", error)

            mutation.confirm()
            self._finish(mutation)
            await self._refresh_stored_counters(habit_id)
            return _ok()

    # ------------------------------------------------------------------
    # Habit commands
    # ------------------------------------------------------------------
    async def create_habit(self, fields: Mapping[str, Any]) -> CommandResult:
        """Validate and create a habit, then show it first in the list."""

        if self.user_id is None:
            return self._not_authenticated()
        try:
            cleaned = clean_habit_fields(fields)
        except ValidationFailure as exc:
            return CommandResult(CommandStatus.VALIDATION_FAILED, str(exc), error=exc)

        mutation = PendingMutation(MutationKind.CREATE)
        mutation.dispatch()
        try:
            habit = await self.store.insert_habit(self.user_id, cleaned)
        except Exception as exc:  # noqa: BLE001 - nothing was cached yet
            error = self._as_store_error(exc, "insert_habit")
            mutation.roll_back()
            self.history.append(mutation)
            logger.warning("Failed to create habit", extra={"error": str(error)})
            return _failed("Failed to create habit.", error)

        mutation.habit_id = habit.id
        mutation.confirm()
        self.history.append(mutation)
        self._habits.insert(0, habit)
        self._recompute(habit)
        logger.info("Habit created", extra={"habit_id": habit.id, "user_id": self.user_id})
        return _ok(value=self.get(habit.id))  # type: ignore[arg-type]

    async def update_habit(self, habit_id: int, fields: Mapping[str, Any]) -> CommandResult:
        """Edit a habit's title, description or frequency; history is untouched."""

        precheck = self._precheck(habit_id)
        if precheck is not None:
            return precheck
        try:
            cleaned = clean_habit_fields(fields, partial=True)
        except ValidationFailure as exc:
            return CommandResult(CommandStatus.VALIDATION_FAILED, str(exc), error=exc)

        async with self._locks[habit_id]:
            habit = self._find(habit_id)
            if habit is None or self.user_id is None:
                return self._missing(habit_id)
            mutation = self._begin(MutationKind.UPDATE, habit_id)
            mutation.dispatch()
            try:
                stored = await self.store.update_habit(habit_id, self.user_id, cleaned)
            except Exception as exc:  # noqa: BLE001 - cached habit left as it was
                error = self._as_store_error(exc, "update_habit")
                mutation.roll_back()
                self._finish(mutation)
                logger.warning("Failed to update habit", extra={"habit_id": habit_id, "error": str(error)})
                return _failed("Failed to update habit.", error)

            for name in EDITABLE_HABIT_FIELDS:
                setattr(habit, name, getattr(stored, name))
            mutation.confirm()
            self._finish(mutation)
            self._recompute(habit)
            logger.info("Habit updated", extra={"habit_id": habit_id})
            return _ok(value=self.get(habit_id))

    async def delete_habit(self, habit_id: int) -> CommandResult:
        """Delete a habit and its history. The caller confirms with the user first."""

        precheck = self._precheck(habit_id)
        if precheck is not None:
            return precheck

        async with self._locks[habit_id]:
            habit = self._find(habit_id)
            if habit is None or self.user_id is None:
                return self._missing(habit_id)
            mutation = self._begin(MutationKind.DELETE, habit_id)
            mutation.dispatch()
            try:
                await self.store.delete_habit(habit_id, self.user_id)
            except Exception as exc:  # noqa: BLE001 - cache unchanged
                error = self._as_store_error(exc, "delete_habit")
                mutation.roll_back()
                self._finish(mutation)
                logger.warning("Failed to delete habit", extra={"habit_id": habit_id, "error": str(error)})
                return _failed("Failed to delete habit.", error)

            self._habits = [h for h in self._habits if h.id != habit_id]
            self.cache.drop_habit(habit_id)
            mutation.confirm()
            self._finish(mutation)
            logger.info("Habit deleted", extra={"habit_id": habit_id})
            return _ok()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _find(self, habit_id: int) -> Optional[Habit]:
        return next((h for h in self._habits if h.id == habit_id), None)

    def _recompute(self, habit: Habit) -> DerivedHabitView:
        return self.cache.recompute([habit])[0]

    def _not_authenticated(self) -> CommandResult:
        return CommandResult(
            CommandStatus.NOT_AUTHENTICATED,
            "You must be signed in to change habits.",
            error=NotAuthenticated("No user session"),
        )

    def _missing(self, habit_id: int) -> CommandResult:
        if self.user_id is None:
            return self._not_authenticated()
        return CommandResult(CommandStatus.NOT_FOUND, f"Habit {habit_id} not found.")

    def _precheck(self, habit_id: int) -> Optional[CommandResult]:
        if self.user_id is None or self._find(habit_id) is None:
            return self._missing(habit_id)
        return None

    def _begin(self, kind: MutationKind, habit_id: int, day: Optional[date] = None) -> PendingMutation:
        mutation = PendingMutation(kind, habit_id=habit_id, day=day)
        self.in_flight[habit_id] = mutation
        return mutation

    def _finish(self, mutation: PendingMutation) -> None:
        if mutation.habit_id is not None and self.in_flight.get(mutation.habit_id) is mutation:
            del self.in_flight[mutation.habit_id]
        self.history.append(mutation)

    def _undo_insert(self, habit: Habit, placeholder: HabitCompletion, mutation: PendingMutation) -> None:
        if self.cache.record_for(placeholder.habit_id, placeholder.completed_on) is placeholder:
            self.cache.apply_remove(placeholder.habit_id, placeholder.completed_on)
        self.cache.settle_streak(habit.id)
        self._recompute(habit)
        mutation.roll_back()
        self._finish(mutation)

    def _undo_remove(self, habit: Habit, removed: HabitCompletion, mutation: PendingMutation) -> None:
        self.cache.apply_insert(removed)
        self.cache.settle_streak(habit.id)
        self._recompute(habit)
        mutation.roll_back()
        self._finish(mutation)

    @staticmethod
    def _as_store_error(exc: Exception, operation: str) -> StoreError:
        if isinstance(exc, StoreError):
            return exc
        logger.error("Unexpected error from store during %s", operation, exc_info=exc)
        error = RemoteUnavailable(f"{operation} failed unexpectedly")
        error.__cause__ = exc
        return error

    async def _refresh_stored_counters(self, habit_id: int) -> None:
        """Re-read store-maintained streak counters after a confirmed write."""

        if not self.cache.streak_source.refreshes_from_store or self.user_id is None:
            return
        try:
            fresh = await self.store.get_habit(habit_id, self.user_id)
        except Exception as exc:  # noqa: BLE001 - the write itself already succeeded
            error = self._as_store_error(exc, "get_habit")
            # Optimistic shift stays until a later refresh succeeds
            logger.warning(
                "Could not refresh streak counters", extra={"habit_id": habit_id, "error": str(error)}
            )
            return
        habit = self._find(habit_id)
        if fresh is None or habit is None:
            return
        habit.current_streak = fresh.current_streak
        habit.longest_streak = fresh.longest_streak
        self.cache.settle_streak(habit_id)
        self._recompute(habit)


__all__ = [
    "CommandResult",
    "CommandStatus",
    "DailySummary",
    "HabitState",
    "HabitStoreEngine",
]
