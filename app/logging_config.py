"""JSON logging for the Lark task assistant.

One JSON object per line on stdout. Per-event fields (message id, chat id,
pipeline stage) travel in ``context``; anything that looks like a credential
is masked before it is written.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

SENSITIVE_KEYS = ("token", "secret", "authorization", "api_key", "password")
REDACTED = "***"
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def redact(context: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``context`` with credential-like values masked (nested dicts included)."""
    cleaned = {}
    for key, value in context.items():
        if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict) and context:
            log_data["context"] = redact(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Route everything through a single stdout handler with JSONFormatter."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"larkbot.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Adds the bound event context, plus any ``context=`` passed per call."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        if context:
            extra = dict(kwargs.get("extra") or {})
            extra["context"] = {**context, **(extra.get("context") or {})}
            kwargs["extra"] = extra
        return msg, kwargs


def get_event_logger(name: str, **context: Any) -> LoggerAdapter:
    """Logger bound to one event's context (message id, chat id, ...)."""
    return LoggerAdapter(get_logger(name), context)
