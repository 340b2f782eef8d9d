"""SQLModel implementation of the habit store."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Callable, Mapping, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select

from ...errors import DuplicateCompletion, RemoteRejected, RemoteUnavailable
from ...logging_config import get_logger
from ...models.habit import EDITABLE_HABIT_FIELDS, Habit, HabitCompletion
from ...services.streaks import refresh_counters
from ..database import SessionFactory

logger = get_logger(__name__)

_T = TypeVar("_T")


class SQLModelHabitStore:
    """SQLModel-based habit store.

    Session work is blocking, so each call runs on a worker thread and the
    event loop only sees the awaited round trip.
    """

    def __init__(self, session_factory: SessionFactory, clock: Callable[[], date] = date.today):
        """Initialize with a session factory."""
        self.session_factory = session_factory
        self._clock = clock

    async def _call(self, operation: str, fn: Callable[..., _T], *args: Any) -> _T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (DuplicateCompletion, RemoteRejected):
            raise
        except IntegrityError as exc:
            logger.warning("Store rejected %s", operation, extra={"error": str(exc.orig)})
            raise RemoteRejected(f"{operation} violated a constraint") from exc
        except OperationalError as exc:
            logger.warning("Store unavailable during %s", operation, extra={"error": str(exc.orig)})
            raise RemoteUnavailable(f"{operation} failed: database unavailable") from exc
        except SQLAlchemyError as exc:
            logger.warning("Store error during %s", operation, extra={"error": str(exc)})
            raise RemoteUnavailable(f"{operation} failed") from exc

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _owned(session: Session, habit_id: int, user_id: int) -> Habit:
        habit = session.exec(
            select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
        ).first()
        if habit is None:
            raise RemoteRejected(f"Habit {habit_id} not found for user {user_id}")
        return habit

    def _refresh_counters(self, session: Session, habit: Habit) -> None:
        dates = session.exec(
            select(HabitCompletion.completed_on).where(HabitCompletion.habit_id == habit.id)
        ).all()
        refresh_counters(habit, dates, self._clock())
        session.add(habit)

    def _list_habits(self, user_id: int) -> list[Habit]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(Habit)
                    .where(Habit.user_id == user_id)
                    .order_by(Habit.created_at.desc(), Habit.id.desc())  # type: ignore[union-attr]
                ).all()
            )
            session.expunge_all()
            return rows

    def _get_habit(self, habit_id: int, user_id: int) -> Optional[Habit]:
        with self.session_factory() as session:
            habit = session.exec(
                select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
            ).first()
            if habit:
                session.expunge(habit)
            return habit

    def _insert_habit(self, user_id: int, fields: Mapping[str, Any]) -> Habit:
        with self.session_factory() as session:
            habit = Habit(user_id=user_id, **dict(fields))
            session.add(habit)
            session.commit()
            session.refresh(habit)
            session.expunge(habit)
            return habit

    def _update_habit(self, habit_id: int, user_id: int, fields: Mapping[str, Any]) -> Habit:
        with self.session_factory() as session:
            habit = self._owned(session, habit_id, user_id)
            for key, value in fields.items():
                if key in EDITABLE_HABIT_FIELDS:
                    setattr(habit, key, value)
            session.add(habit)
            session.commit()
            session.refresh(habit)
            session.expunge(habit)
            return habit

    def _delete_habit(self, habit_id: int, user_id: int) -> None:
        with self.session_factory() as session:
            habit = self._owned(session, habit_id, user_id)
            # Relationship cascade removes the completion rows
            session.delete(habit)
            session.commit()

    def _list_completions(self, user_id: int, since: Optional[date]) -> list[HabitCompletion]:
        with self.session_factory() as session:
            statement = select(HabitCompletion).where(HabitCompletion.user_id == user_id)
            if since is not None:
                statement = statement.where(HabitCompletion.completed_on >= since)
            statement = statement.order_by(
                HabitCompletion.habit_id, HabitCompletion.completed_on  # type: ignore[arg-type]
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def _insert_completion(self, habit_id: int, user_id: int, day: date) -> HabitCompletion:
        with self.session_factory() as session:
            habit = self._owned(session, habit_id, user_id)
            record = HabitCompletion(habit_id=habit_id, user_id=user_id, completed_on=day)
            session.add(record)
            try:
                session.flush()
            except IntegrityError as exc:
                session.rollback()
                existing = session.exec(
                    select(HabitCompletion.id).where(
                        HabitCompletion.habit_id == habit_id,
                        HabitCompletion.completed_on == day,
                    )
                ).first()
                if existing is not None:
                    raise DuplicateCompletion(habit_id, day) from exc
                raise
            self._refresh_counters(session, habit)
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record

    def _delete_completion(self, habit_id: int, user_id: int, day: date) -> None:
        with self.session_factory() as session:
            habit = self._owned(session, habit_id, user_id)
            record = session.exec(
                select(HabitCompletion).where(
                    HabitCompletion.habit_id == habit_id,
                    HabitCompletion.completed_on == day,
                )
            ).first()
            if record:
                session.delete(record)
                session.flush()
            self._refresh_counters(session, habit)
            session.commit()

    # ------------------------------------------------------------------
    # HabitStore protocol
    # ------------------------------------------------------------------
    async def list_habits(self, user_id: int) -> list[Habit]:
        return await self._call("list_habits", self._list_habits, user_id)

    async def get_habit(self, habit_id: int, user_id: int) -> Optional[Habit]:
        return await self._call("get_habit", self._get_habit, habit_id, user_id)

    async def insert_habit(self, user_id: int, fields: Mapping[str, Any]) -> Habit:
        return await self._call("insert_habit", self._insert_habit, user_id, fields)

    async def update_habit(self, habit_id: int, user_id: int, fields: Mapping[str, Any]) -> Habit:
        return await self._call("update_habit", self._update_habit, habit_id, user_id, fields)

    async def delete_habit(self, habit_id: int, user_id: int) -> None:
        await self._call("delete_habit", self._delete_habit, habit_id, user_id)

    async def list_completions(
        self, user_id: int, since: Optional[date] = None
    ) -> list[HabitCompletion]:
        return await self._call("list_completions", self._list_completions, user_id, since)

    async def insert_completion(self, habit_id: int, user_id: int, day: date) -> HabitCompletion:
        return await self._call(
            "insert_completion", self._insert_completion, habit_id, user_id, day
        )

    async def delete_completion(self, habit_id: int, user_id: int, day: date) -> None:
        await self._call("delete_completion", self._delete_completion, habit_id, user_id, day)
