"""Logging setup for the course cache.

Two output shapes, picked by LOG_JSON:

  console (default)
      One readable line per record.  Records logged inside an operation
      scope carry the operation name in brackets, so the lines of one
      fan-out read together:

        2024-03-01T10:00:00.123+0000 WARNING  coursecache.services.modules
          [modules.fetch_content_for_module] Progress for content 12 failed: 500

  JSON lines
      One object per record with the operation and any entity ids the
      caller passed through ``extra=``:

        {"level": "WARNING", "operation": "modules.fetch_content_for_module",
         "content_id": 12, "module_id": 7, "message": "..."}

The operation name comes from coursecache/core/context.py; setup_logging()
installs the filter that copies it onto each record.
"""

from __future__ import annotations

import json
import logging
import sys
import time

from coursecache.core.config import Settings
from coursecache.core.context import OperationContextFilter

# HTTP transport loggers are held at WARNING or above.
_NOISY_LOGGERS = ("httpx", "httpcore")

ENTITY_FIELDS = ("course_id", "module_id", "content_id", "assignment_id", "user_id")


def _operation_of(record: logging.LogRecord) -> str | None:
    operation = getattr(record, "operation", None)
    return None if operation in (None, "-") else operation


class _ConsoleFormatter(logging.Formatter):
    """Readable single-line output.

    WARNING and above get a ``[file:line]`` suffix; tracebacks follow the
    line when the record carries exc_info.
    """

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03d"

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = super().formatTime(record, datefmt)
        offset = self.converter(record.created)
        return stamp + _utc_offset(offset)

    def format(self, record: logging.LogRecord) -> str:
        parts = [self.formatTime(record), f"{record.levelname:<8}", record.name]
        operation = _operation_of(record)
        if operation:
            parts.append(f"[{operation}]")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.levelno >= logging.WARNING:
            line += f"  [{record.filename}:{record.lineno}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _utc_offset(local: time.struct_time) -> str:
    minutes = (local.tm_gmtoff or 0) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}{minutes:02d}"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        operation = _operation_of(record)
        if operation:
            entry["operation"] = operation
        for key in ENTITY_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send every record to stdout at ``level_name`` (unknown names mean info).

    Replaces any handlers already on the root logger, so calling it twice
    does not double the output.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ConsoleFormatter())
    handler.addFilter(OperationContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logging_from(settings: Settings) -> None:
    setup_logging(settings.log_level, json_format=settings.log_json)
