"""User model used to resolve the owner of a session."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Application user with argon2 credentials."""

    __tablename__: ClassVar[str] = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(nullable=False, unique=True, index=True, max_length=64)
    password_hash: str = Field(nullable=False, max_length=255)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    last_login: Optional[datetime] = Field(default=None)
