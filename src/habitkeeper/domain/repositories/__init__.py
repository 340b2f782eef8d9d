"""Store protocol definitions for the domain layer."""

from .habit import HabitStore

__all__ = ["HabitStore"]
