"""Database infrastructure for the SQL-backed habit store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from ..config import BaseConfig

SessionFactory = Callable[[], ContextManager[Session]]


def create_db_engine(config: BaseConfig) -> Engine:
    """Create SQLModel engine from configuration."""
    return create_engine(config.DATABASE_URL, **config.sqlalchemy_engine_options())


def init_database(engine: Engine) -> None:
    """Initialize database schema."""
    # Register every table on SQLModel.metadata
    from .. import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> SessionFactory:
    """Return a callable that opens one unit of work per ``with`` block.

    The block commits when it exits cleanly and rolls back when it raises.
    Loaded rows stay readable after commit so stores can expunge and return them.
    """

    @contextmanager
    def unit_of_work() -> Iterator[Session]:
        with Session(engine, expire_on_commit=False) as session:
            try:
                yield session
            except Exception:
                session.rollback()
                raise
            session.commit()

    return unit_of_work


def bootstrap_database(config: BaseConfig | None = None) -> Tuple[Engine, SessionFactory]:
    """Create the engine, initialize the schema and return (engine, session_factory)."""

    cfg = config or BaseConfig()
    engine = create_db_engine(cfg)
    init_database(engine)
    return engine, create_session_factory(engine)
