"""
Synced Cache — Structured Logging

JSON log formatting for the `synced_cache` logger hierarchy. Modules log through
`logging.getLogger(__name__)` with `extra={...}` fields; this formatter lifts those
fields into the JSON record.
"""

import json
import logging
from datetime import UTC, datetime

ROOT_LOGGER = "synced_cache"

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "name",
        "message",
        "taskName",
    }
)

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add any extra fields from record.__dict__
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """
    Configure the `synced_cache` logger.

    Replaces any handler previously installed by this function, so calling it
    repeatedly (e.g. per test) does not duplicate output.

    Args:
        level: Log level name
        fmt: "json" for structured output, "text" for a plain format

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)

    for handler in list(logger.handlers):
        if getattr(handler, "_synced_cache_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    handler._synced_cache_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level.upper())

    return logger
