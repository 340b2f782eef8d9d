"""HabitKeeper: habit tracking with optimistic, streak-aware completion caching."""

from __future__ import annotations

from .config import BaseConfig, TestConfig
from .services.cache import CompletionCache, DerivedHabitView
from .services.engine import CommandResult, CommandStatus, HabitState, HabitStoreEngine
from .services.streaks import compute_streak
from .session import AppContext, create_app_context

__all__ = [
    "AppContext",
    "BaseConfig",
    "CommandResult",
    "CommandStatus",
    "CompletionCache",
    "DerivedHabitView",
    "HabitState",
    "HabitStoreEngine",
    "TestConfig",
    "compute_streak",
    "create_app_context",
]
__version__ = "0.1.0"
