"""Local user accounts used to resolve who owns a session."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from sqlmodel import select

from ..errors import ValidationFailure
from ..infra.database import SessionFactory
from ..logging_config import get_logger
from ..models.user import User

logger = get_logger(__name__)

_hasher = PasswordHasher()
LOCAL_USERNAME = "local"
MIN_PASSWORD_LENGTH = 8


def get_user_by_username(username: str, session_factory: SessionFactory) -> Optional[User]:
    """Fetch a user by username."""
    username = username.strip()
    with session_factory() as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if user:
            session.expunge(user)
        return user


def create_user(*, username: str, password: str, session_factory: SessionFactory) -> User:
    """Create a new user with an argon2 password hash."""

    username = username.strip()
    if not username:
        raise ValidationFailure("Username is required.", field="username")
    if username.lower() == LOCAL_USERNAME:
        raise ValidationFailure("The local profile name is reserved.", field="username")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", field="password"
        )
    with session_factory() as session:
        existing = session.exec(select(User).where(User.username == username)).first()
        if existing:
            raise ValidationFailure("Username already exists.", field="username")
        user = User(username=username, password_hash=_hasher.hash(password))
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
    logger.info("User created", extra={"user_id": user.id})
    return user


def authenticate(*, username: str, password: str, session_factory: SessionFactory) -> Optional[User]:
    """Validate credentials and return the user when correct."""

    username = username.strip()
    if not username:
        return None
    with session_factory() as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if user is None:
            return None
        try:
            _hasher.verify(user.password_hash, password)
        except (VerifyMismatchError, InvalidHash, VerificationError):
            logger.info("Rejected sign-in", extra={"username": username})
            return None

        user.last_login = datetime.now(timezone.utc)
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def ensure_local_user(session_factory: SessionFactory) -> User:
    """Create or return the passwordless local profile."""

    with session_factory() as session:
        user = session.exec(select(User).where(User.username == LOCAL_USERNAME)).first()
        if user:
            session.expunge(user)
            return user
        user = User(username=LOCAL_USERNAME, password_hash=_hasher.hash(LOCAL_USERNAME))
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user
