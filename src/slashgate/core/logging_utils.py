from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .config import LogConfig

_MAX_FIELD_CHARS = 2000
_REDACTED = "<redacted>"
_SENSITIVE_FIELDS = frozenset({"token", "interaction_token", "bot_token", "secret"})
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def sanitize_log_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_log_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): sanitize_log_value(item) for key, item in value.items()}
    text = str(value)
    if len(text) > _MAX_FIELD_CHARS:
        return text[:_MAX_FIELD_CHARS] + "..."
    return text


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured log line: the event name followed by JSON fields."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        if key in _SENSITIVE_FIELDS and value:
            payload[key] = _REDACTED
            continue
        payload[key] = sanitize_log_value(value)
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    logger.log(
        level,
        json.dumps(payload, ensure_ascii=False, default=str),
        exc_info=exc if exc is not None and level >= logging.ERROR else None,
    )


def setup_rotating_logger(name: str, log_config: "LogConfig") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(log_config.level)
    target = str(log_config.path.resolve())
    for handler in logger.handlers:
        if getattr(handler, "baseFilename", None) == target:
            return logger
    log_config.path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        target,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
