"""
Logging setup for spendsync.

Modules log through `get_logger(__name__)` and attach context with
`extra={...}` (record ids, counts, durations). `configure_logging` decides how
that context is rendered: appended as ``key=value`` pairs on the console, or
as top-level keys of one JSON object per line when `LOG_JSON` is set.
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes present on every LogRecord; anything else arrived via `extra=`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The `extra=` fields attached to `record`."""
    return {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}


def render_json(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        **context_fields(record),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return render_json(record)


class ConsoleFormatter(logging.Formatter):
    """Plain text line followed by the record's context as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)
        fields = context_fields(record)
        if not fields:
            return line
        context = " ".join(f"{key}={value}" for key, value in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} | {context}{sep}{tail}"


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Install one stderr handler on the root logger.

    Parameters
    ----------
    level : str
        Level name, e.g. "DEBUG" or "WARNING".
    json_logs : bool
        Emit one JSON object per line instead of console text.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": ConsoleFormatter,
                    "fmt": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                    "datefmt": "%H:%M:%S",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "root": {"handlers": ["stderr"], "level": level},
            # Driver DEBUG output drowns out sync progress.
            "loggers": {
                "asyncpg": {"level": "WARNING"},
                "psycopg": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["ConsoleFormatter", "JsonFormatter", "configure_logging", "get_logger"]
