from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from .config import LogConfig

LOG_LEVEL_ENV = "PR_LINK_BOT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_LOG_VALUE_CHARS = 500


def sanitize_log_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, BaseException):
        text = str(value) or type(value).__name__
    else:
        text = str(value)
    text = text.replace("\n", " ")
    if len(text) > MAX_LOG_VALUE_CHARS:
        text = text[: MAX_LOG_VALUE_CHARS - 3] + "..."
    return text


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit a structured log line: the event name followed by JSON fields."""

    if not logger.isEnabledFor(level):
        return
    payload = {key: sanitize_log_value(value) for key, value in fields.items()}
    if exc is not None:
        payload["exc"] = sanitize_log_value(exc)
        payload["exc_type"] = type(exc).__name__
    if payload:
        logger.log(level, "%s %s", event, json.dumps(payload, sort_keys=True))
    else:
        logger.log(level, "%s", event)


def resolve_log_level(configured: str) -> int:
    raw = os.environ.get(LOG_LEVEL_ENV) or configured or "INFO"
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_rotating_logger(name: str, log_config: LogConfig) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(resolve_log_level(log_config.level))
    logger.propagate = False
    # Repeated setup (tests, reloads) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_config.path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_config.path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger
