"""Exception taxonomy shared by the store adapters and the engine."""

from __future__ import annotations


class HabitKeeperError(Exception):
    """Base class for all HabitKeeper errors."""


class NotAuthenticated(HabitKeeperError):
    """Raised when no user can be resolved for the current session."""


class ValidationFailure(HabitKeeperError):
    """Raised when habit fields fail validation before any I/O happens."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidTransition(HabitKeeperError):
    """Raised when a pending mutation is moved to an illegal state."""


class StoreError(HabitKeeperError):
    """Base class for failures reported by a habit store."""


class DuplicateCompletion(StoreError):
    """A completion for the same habit and date already exists."""

    def __init__(self, habit_id: int, day):
        super().__init__(f"Habit {habit_id} already completed on {day}")
        self.habit_id = habit_id
        self.day = day


class RemoteUnavailable(StoreError):
    """The store could not be reached or failed while executing the call."""


class RemoteRejected(StoreError):
    """The store refused the call (missing row, foreign owner, constraint)."""


__all__ = [
    "DuplicateCompletion",
    "HabitKeeperError",
    "InvalidTransition",
    "NotAuthenticated",
    "RemoteRejected",
    "RemoteUnavailable",
    "StoreError",
    "ValidationFailure",
]
