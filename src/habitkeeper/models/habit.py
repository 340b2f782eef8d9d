"""Habit and completion-record data structures."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel


class Frequency(str, Enum):
    """How often a habit is meant to be performed."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


EDITABLE_HABIT_FIELDS = ("title", "description", "frequency")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Habit(SQLModel, table=True):
    """A user-defined habit."""

    __tablename__: ClassVar[str] = "habit"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    title: str = Field(nullable=False, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    frequency: str = Field(default=Frequency.DAILY.value, nullable=False, max_length=16)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False, index=True)

    # Maintained by stores that keep a server-side streak counter
    current_streak: int = Field(default=0, nullable=False)
    longest_streak: int = Field(default=0, nullable=False)

    completions: list["HabitCompletion"] = Relationship(
        back_populates="habit",
        sa_relationship=relationship(
            "HabitCompletion", back_populates="habit", cascade="all, delete-orphan"
        ),
    )


class HabitCompletion(SQLModel, table=True):
    """A habit marked complete on one calendar day.

    ``id`` stays ``None`` while the record only exists as an optimistic
    placeholder in the local cache.
    """

    __tablename__: ClassVar[str] = "habit_completion"
    __table_args__ = (
        UniqueConstraint("habit_id", "completed_on", name="uq_habit_completion_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    habit_id: int = Field(foreign_key="habit.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    completed_on: date = Field(nullable=False, index=True)

    habit: Optional["Habit"] = Relationship(
        back_populates="completions",
        sa_relationship=relationship("Habit", back_populates="completions"),
    )

    @property
    def is_confirmed(self) -> bool:
        """True once the store has assigned an id."""
        return self.id is not None
