"""
Logging for the session store.

Modules obtain their loggers from ``get_logger``. Those loggers carry a
filter that masks session ids, tokens and other sensitive ``extra`` fields
before any handler sees the record, whatever handlers the host application
has configured. ``init_logging`` optionally attaches a JSON handler to the
package logger from settings.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sessionstore.core.config import Settings, settings

PACKAGE_LOGGER = "sessionstore"
REDACTED = "[REDACTED]"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

_SENSITIVE_KEYWORDS = ("session_id", "token", "cookie", "secret", "key")

_JSON_HANDLER_NAME = "sessionstore-json"


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the fields a caller attached to ``record`` through ``extra``."""
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRIBUTES
    }


def is_sensitive_field(name: str) -> bool:
    name = name.lower()
    return any(keyword in name for keyword in _SENSITIVE_KEYWORDS)


class RedactingFilter(logging.Filter):
    """Replaces sensitive extra fields with a placeholder. Never drops records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in extra_fields(record):
            if is_sensitive_field(key):
                setattr(record, key, REDACTED)
        return True


_redacting_filter = RedactingFilter()


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger whose records are redacted before reaching any handler.

    Args:
        name: Logger name, normally the module's ``__name__``

    Returns:
        Logger instance with the redacting filter attached
    """
    logger = logging.getLogger(name)
    if _redacting_filter not in logger.filters:
        logger.addFilter(_redacting_filter)
    return logger


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, extras nested under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra = extra_fields(record)
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str)


def init_logging(config: Optional[Settings] = None) -> logging.Logger:
    """
    Apply the logging settings to the ``sessionstore`` logger.

    Sets the package log level. With ``log_json`` enabled, records are also
    written as JSON to stdout by a handler of the package logger instead of
    propagating to the application's handlers. Calling it again does not add
    a second handler.
    """
    config = config or settings
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(config.log_level.upper())

    has_json_handler = any(h.get_name() == _JSON_HANDLER_NAME for h in logger.handlers)
    if config.log_json and not has_json_handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_JSON_HANDLER_NAME)
        handler.setFormatter(StructuredFormatter())
        # Handler-level filter covers records from plain child loggers too
        handler.addFilter(_redacting_filter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger
