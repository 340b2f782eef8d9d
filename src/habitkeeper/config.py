"""Application configuration objects and helpers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

STORE_BACKENDS = {"sql", "memory"}
STREAK_SOURCES = {"history", "stored"}


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, raising a readable error."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "HabitKeeper"
    DB_FILENAME = "habitkeeper.db"
    LOG_FILENAME = "habitkeeper.log"

    def __init__(self) -> None:
        self.DEV_MODE = _env_bool("HABITKEEPER_DEV_MODE", default=True)
        self.DATA_DIR = self._resolve_data_dir()
        self.DATABASE_URL = os.getenv("HABITKEEPER_DATABASE_URL", self._build_sqlite_url())
        self.STORE_BACKEND = os.getenv("HABITKEEPER_STORE", "sql").strip().lower()
        self.STREAK_SOURCE = os.getenv("HABITKEEPER_STREAK_SOURCE", "history").strip().lower()
        self.HISTORY_DAYS = _env_int("HABITKEEPER_HISTORY_DAYS", 0)
        self.WEEKLY_DUE_WEEKDAY = _env_int("HABITKEEPER_WEEKLY_DUE_WEEKDAY", 6)
        self.MONTHLY_DUE_DAY = _env_int("HABITKEEPER_MONTHLY_DUE_DAY", -1)
        self.validate()

    def validate(self) -> None:
        """Reject settings the engine cannot honour."""

        if self.STORE_BACKEND not in STORE_BACKENDS:
            raise ValueError(
                f"HABITKEEPER_STORE must be one of {sorted(STORE_BACKENDS)}, got {self.STORE_BACKEND!r}"
            )
        if self.STREAK_SOURCE not in STREAK_SOURCES:
            raise ValueError(
                f"HABITKEEPER_STREAK_SOURCE must be one of {sorted(STREAK_SOURCES)}, "
                f"got {self.STREAK_SOURCE!r}"
            )
        if self.HISTORY_DAYS < 0:
            raise ValueError("HABITKEEPER_HISTORY_DAYS cannot be negative.")
        if not 0 <= self.WEEKLY_DUE_WEEKDAY <= 6:
            raise ValueError("HABITKEEPER_WEEKLY_DUE_WEEKDAY must be between 0 (Monday) and 6 (Sunday).")
        if self.MONTHLY_DUE_DAY != -1 and not 1 <= self.MONTHLY_DUE_DAY <= 31:
            raise ValueError("HABITKEEPER_MONTHLY_DUE_DAY must be between 1 and 31, or -1 for the last day.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("HABITKEEPER_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside the data directory."""

        return f"sqlite:///{self.DATA_DIR / self.DB_FILENAME}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if self.DATABASE_URL.startswith("sqlite"):
            # Store calls run on worker threads via asyncio.to_thread.
            return {"connect_args": {"check_same_thread": False}}
        return {}


class TestConfig(BaseConfig):
    """Configuration for tests: throwaway data dir and in-memory store."""

    __test__ = False  # keep pytest from collecting this class

    def __init__(self, data_dir: Path | None = None) -> None:
        self._data_dir_override = data_dir
        super().__init__()
        self.STORE_BACKEND = "memory"
        self.validate()

    def _resolve_data_dir(self) -> Path:
        if self._data_dir_override is not None:
            path = Path(self._data_dir_override)
        else:
            path = Path(tempfile.mkdtemp(prefix="habitkeeper-test-"))
        path.mkdir(parents=True, exist_ok=True)
        return path
