"""Pytest configuration and shared fixtures for HabitKeeper tests.

Provides a throwaway SQLite database, the in-memory store, a fixed clock and
engine factories so engine behaviour can be checked without the real app
database or the wall clock.
"""

from __future__ import annotations

import tempfile
from datetime import date, timedelta
from pathlib import Path

import pytest
from sqlmodel import SQLModel, create_engine

from habitkeeper import models  # noqa: F401  (registers tables)
from habitkeeper.infra.database import create_session_factory
from habitkeeper.infra.repositories import InMemoryHabitStore, SQLModelHabitStore
from habitkeeper.models.user import User
from habitkeeper.services.engine import HabitStoreEngine
from habitkeeper.services.streaks import DuePolicy, streak_source_for

# A Friday; weekly habits fall due on Sunday by default.
TODAY = date(2024, 3, 15)
USER_ID = 1


def days_ago(n: int) -> date:
    """Return the calendar day ``n`` days before TODAY."""
    return TODAY - timedelta(days=n)


# =============================================================================
# Clock and in-memory store
# =============================================================================


@pytest.fixture
def clock():
    """A settable clock; call ``clock.set(day)`` to move 'today'."""

    class _Clock:
        def __init__(self) -> None:
            self.today = TODAY

        def __call__(self) -> date:
            return self.today

        def set(self, day: date) -> None:
            self.today = day

    return _Clock()


@pytest.fixture
def memory_store(clock) -> InMemoryHabitStore:
    """In-memory store sharing the test clock."""
    return InMemoryHabitStore(clock=clock)


@pytest.fixture
def make_engine(memory_store, clock):
    """Factory for engines over the in-memory store.

    Returns:
        Callable: accepts ``streak_source`` ("history"/"stored"), ``store``
        and ``history_days`` overrides
    """

    def _make(
        streak_source: str = "history",
        store=None,
        history_days: int = 0,
    ) -> HabitStoreEngine:
        return HabitStoreEngine(
            store or memory_store,
            clock=clock,
            streak_source=streak_source_for(streak_source),
            due_policy=DuePolicy(),
            history_days=history_days,
        )

    return _make


@pytest.fixture
def habit_factory(memory_store):
    """Seed habits (and optional completion days) straight into the memory store."""

    def _create(
        title: str = "Test Habit",
        *,
        frequency: str = "daily",
        description: str | None = None,
        completed: tuple[int, ...] = (),
        user_id: int = USER_ID,
    ):
        habit = memory_store.seed_habit(
            user_id, title=title, frequency=frequency, description=description
        )
        for offset in completed:
            memory_store.seed_completion(habit.id, user_id, days_ago(offset))
        return habit

    return _create


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated SQLite database file for each test.

    Yields:
        Engine: SQLModel engine with all tables created
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(
        f"sqlite:///{db_path}", echo=False, connect_args={"check_same_thread": False}
    )
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Transactional session factory bound to the test database."""
    return create_session_factory(db_engine)


@pytest.fixture
def user(session_factory) -> User:
    """Create a default user for scoping data."""
    with session_factory() as session:
        u = User(username="tester", password_hash="dummy-hash")
        session.add(u)
        session.commit()
        session.refresh(u)
        session.expunge(u)
    return u


@pytest.fixture
def sql_store(session_factory, clock) -> SQLModelHabitStore:
    """SQL-backed store sharing the test clock."""
    return SQLModelHabitStore(session_factory, clock=clock)
