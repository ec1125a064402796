from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any

from .config import LogConfig

_FORMATTER = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def _coerce_field(value: Any) -> Any:
    if isinstance(value, BaseException):
        detail = str(value)
        name = type(value).__name__
        return f"{name}: {detail}" if detail else name
    return value


def log_event(
    logger: logging.Logger, level: int, event: str, **fields: Any
) -> None:
    """Emit a single structured log line: a JSON object keyed by ``event``."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _coerce_field(value)
    logger.log(level, json.dumps(payload, default=str, sort_keys=False))


def setup_rotating_logger(name: str, log_config: LogConfig) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    log_path = log_config.path
    for handler in logger.handlers:
        if (
            isinstance(handler, RotatingFileHandler)
            and getattr(handler, "baseFilename", None) == os.path.abspath(log_path)
        ):
            return logger
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_FORMATTER)
    logger.addHandler(handler)
    return logger
