"""Structured logging for the wabot API.

Every record is written to stdout as a single JSON line. Customer phone
numbers found in a record's context are masked before they are written.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

PHONE_CONTEXT_KEYS = frozenset({"customer_phone", "from", "to"})
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def mask_phone(value: Any) -> Any:
    """``+628123456789`` -> ``+628******789``; short values are fully hidden."""
    if not isinstance(value, str) or not value:
        return value
    if len(value) <= 7:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 7) + value[-3:]


def scrub_context(context: dict) -> dict:
    return {key: mask_phone(value) if key in PHONE_CONTEXT_KEYS else value for key, value in context.items()}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict) and context:
            entry["context"] = scrub_context(context)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    resolved = getattr(logging, level.upper(), None)
    root_logger.setLevel(resolved if isinstance(resolved, int) else logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"wabot.{name}")


class ContextLogger(logging.LoggerAdapter):
    """Adapter carrying per-message context into every record.

    Usage:
        log = ContextLogger(get_logger("inbound"), {"channel": "twilio"})
        log = log.bind(chatbot_id="...")
        log.info("Reply sent", context={"tokens": 42})
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, dict(extra or {}))

    def bind(self, **context: Any) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.extra, **context})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        if context:
            kwargs["extra"] = {**kwargs.get("extra", {}), "context": context}
        return msg, kwargs
