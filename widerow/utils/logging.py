"""
Structured logging utilities for widerow.

Library modules only call `get_logger(__name__)`; applications (and the CLI)
call `configure_logging` once. Context travels through `extra=` and the JSON
formatter lifts the well-known query fields to the top level of each record.

Usage:
    from widerow.utils.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", json_logs=True)
    log = get_logger(__name__)
    log.debug("statement executed", extra={"cfname": "User", "rows": 3})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes a caller may attach through `extra=` that are worth promoting.
_PROMOTED_FIELDS = (
    "statement",
    "cfname",
    "key",
    "rows",
    "latency",
    "host",
    "shard",
    "shards",
    "association",
    "event",
)


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as JSON string."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    for name in _PROMOTED_FIELDS:
        if hasattr(record, name):
            payload[name] = getattr(record, name)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if hasattr(record, "extra") and isinstance(record.extra, dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure the `widerow` logger hierarchy.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Whether to emit logs as JSON. If False, uses a concise human formatter.
    """
    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "loggers": {
                "widerow": {
                    "handlers": ["default"],
                    "level": level,
                    "propagate": False,
                }
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the given name. If name is None, returns the package logger.
    """
    return logging.getLogger(name or "widerow")


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
