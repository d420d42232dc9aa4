# src/xraytrace/logging/logger.py — v1
"""Log setup for the xraytrace namespace.

Every record passing through an xraytrace handler is stamped with the active
pipeline/run/step context by RunContextFilter, so formatters only read record
attributes and never consult the context variables themselves.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from xraytrace.logging.context import get_context

ROOT_LOGGER = "xraytrace"
_CONTEXT_FIELDS = ("pipeline_id", "run_id", "step_type", "step_id")


class RunContextFilter(logging.Filter):
    """Copy the current run/step context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_context().as_dict().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in _CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_context(record)
        if context:
            entry["context"] = context

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable output for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} [{record.levelname:8s}] {record.name}"
        run_id = getattr(record, "run_id", None)
        if run_id:
            line += f" [run={run_id}]"
        step_type = getattr(record, "step_type", None)
        if step_type:
            line += f" ({step_type})"
        line += f" - {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(log_format: str) -> logging.Formatter:
    """Return the formatter for "json" or "text"."""
    if log_format == "json":
        return JsonFormatter()
    if log_format == "text":
        return TextFormatter()
    raise ValueError(f"Unknown log format: {log_format!r}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
) -> logging.Logger:
    """Configure the ``xraytrace`` logger and return it.

    Logs go to stderr (stdout is reserved for CLI output) and, when
    ``log_file`` is given, to a size-rotated file as well. Calling this again
    replaces the previous handlers.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = build_formatter(log_format)
    context_filter = RunContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from xraytrace.logging.handlers import create_rotating_handler

        handlers.append(create_rotating_handler(log_file, rotation=rotation, retention=retention))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)
    return root
