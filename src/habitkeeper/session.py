"""Application context and per-user sessions.

Engine state lives on a :class:`UserSession` created at login and torn down
at logout, so separate sessions never share a cache.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .domain.repositories import HabitStore
from .errors import NotAuthenticated
from .infra.database import SessionFactory, bootstrap_database
from .infra.repositories import InMemoryHabitStore, SQLModelHabitStore
from .logging_config import get_logger
from .models.user import User
from .services.engine import CommandResult, HabitStoreEngine
from .services.streaks import DuePolicy, streak_source_for

logger = get_logger(__name__)


@dataclass
class UserSession:
    """A logged-in user and the engine that serves them."""

    user: User
    engine: HabitStoreEngine

    @property
    def user_id(self) -> int:
        return self.user.id  # type: ignore[return-value]


@dataclass
class AppContext:
    """Centralized application context with the store and the active session."""

    config: BaseConfig
    store: HabitStore
    clock: Callable[[], date] = date.today
    session_factory: Optional[SessionFactory] = None
    db_engine: Optional[Engine] = None
    session: Optional[UserSession] = field(default=None)

    def new_engine(self) -> HabitStoreEngine:
        """Build an engine wired to this context's store and settings."""

        return HabitStoreEngine(
            self.store,
            clock=self.clock,
            streak_source=streak_source_for(self.config.STREAK_SOURCE),
            due_policy=DuePolicy(
                weekly_weekday=self.config.WEEKLY_DUE_WEEKDAY,
                monthly_day=self.config.MONTHLY_DUE_DAY,
            ),
            history_days=self.config.HISTORY_DAYS,
        )

    async def login(self, user: User) -> CommandResult:
        """Start a fresh session for ``user`` and load their habits."""

        if user.id is None:
            raise NotAuthenticated("User has no id; was it saved?")
        if self.session is not None:
            self.logout()
        self.session = UserSession(user=user, engine=self.new_engine())
        logger.info("Session started", extra={"user_id": user.id})
        return await self.session.engine.load(user.id)

    def logout(self) -> None:
        """Tear down the active session and its cache."""

        if self.session is None:
            return
        user_id = self.session.user_id
        self.session.engine.reset()
        self.session = None
        logger.info("Session ended", extra={"user_id": user_id})

    def require_session(self) -> UserSession:
        """Return the active session or raise if nobody is logged in."""

        if self.session is None:
            raise NotAuthenticated("User is not authenticated")
        return self.session

    def dispose(self) -> None:
        self.logout()
        if self.db_engine is not None:
            self.db_engine.dispose()


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    clock: Callable[[], date] = date.today,
) -> AppContext:
    """Create the application context and its habit store."""

    if config is None:
        config = BaseConfig()

    if config.STORE_BACKEND == "memory":
        return AppContext(config=config, store=InMemoryHabitStore(clock=clock), clock=clock)

    db_engine, session_factory = bootstrap_database(config)
    return AppContext(
        config=config,
        store=SQLModelHabitStore(session_factory, clock=clock),
        clock=clock,
        session_factory=session_factory,
        db_engine=db_engine,
    )
