"""Structured logging helpers for the diagnostic channel."""

import json
import logging
from collections.abc import MutableMapping
from typing import Any

# Attributes every LogRecord carries; anything else was passed as an extra.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}

# Keyword arguments Logger._log() understands itself
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that supports structured logging with extra fields.

    Usage:
        logger = get_structured_logger(__name__, component="fritz")
        logger.warning("Sample failed", source="fritz0", error="timeout")
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Fold keyword fields into ``extra`` on top of the adapter defaults."""
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOGGING_KWARGS}
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {}), **fields}
        return msg, kwargs


def get_structured_logger(name: str, **default_extra: Any) -> StructuredLoggerAdapter:
    """
    Get a structured logger that supports extra keyword arguments.

    Args:
        name: Logger name (usually __name__)
        **default_extra: Default extra fields to include in all logs

    Returns:
        A StructuredLoggerAdapter instance
    """
    base_logger = logging.getLogger(name)
    return StructuredLoggerAdapter(base_logger, default_extra)


def extract_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the non-standard attributes attached to a log record."""
    extra = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS:
            continue
        try:
            json.dumps(value)
            extra[key] = value
        except (TypeError, ValueError):
            extra[key] = str(value)
    return extra


class StructuredFormatter(logging.Formatter):
    """
    Formatter that appends structured extras as ``key=value`` pairs.

    Keeps each diagnostic on one line, e.g.::

        2026-01-01 12:00:00,000 - WARNING - Sample failed source=fox0 error=...
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = extract_extra(record)
        if not extra:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in extra.items())
        return f"{line} {pairs}"
