"""Structured logging: a readable console stream plus a rotating JSON log."""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import BaseConfig

ROOT_LOGGER_NAME = "habitkeeper"

_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5

_DEV_CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Caller context passed with ``extra={...}`` (habit ids, days, errors) is
    collected under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self._describe_exception(record)
        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if context:
            entry["extra"] = context
        return json.dumps(entry, default=str)

    def _describe_exception(self, record: logging.LogRecord) -> dict[str, Any]:
        exc_type, exc_value, _ = record.exc_info  # type: ignore[misc]
        return {
            "type": getattr(exc_type, "__name__", None),
            "message": None if exc_value is None else str(exc_value),
            "traceback": self.formatException(record.exc_info),  # type: ignore[arg-type]
        }


def _console_handler(dev_mode: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    if dev_mode:
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(_DEV_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _json_file_handler(path: Path, dev_mode: bool) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG if dev_mode else logging.INFO)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(config: BaseConfig) -> logging.Logger:
    """Attach console and JSON file handlers to the ``habitkeeper`` logger.

    Safe to call repeatedly; earlier handlers are closed and replaced.

    Args:
        config: supplies DATA_DIR (log location) and DEV_MODE (verbosity)

    Returns:
        The ``habitkeeper`` logger
    """
    log_file = Path(config.DATA_DIR) / "logs" / config.LOG_FILENAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if config.DEV_MODE else logging.INFO)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    logger.addHandler(_console_handler(config.DEV_MODE))
    logger.addHandler(_json_file_handler(log_file, config.DEV_MODE))

    logger.info(
        "Logging initialized",
        extra={"dev_mode": config.DEV_MODE, "log_file": str(log_file)},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``name`` as a child of the ``habitkeeper`` logger.

    Module ``__name__`` values already under the package are used as is.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
