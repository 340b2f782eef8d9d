"""SQLModel table exports."""

from .habit import EDITABLE_HABIT_FIELDS, Frequency, Habit, HabitCompletion
from .user import User

__all__ = [
    "EDITABLE_HABIT_FIELDS",
    "Frequency",
    "Habit",
    "HabitCompletion",
    "User",
]
