"""Structured logging configuration for checknode.

Log lines go to stderr, one per record, in a shape that cluster log
collectors can split on whitespace::

    2026-10-18 07:14:02.113 WARNING  reconciler: Node unhealthy: ... (rule=drain)

Context set through :meth:`CheckNodeLogger.with_context` or ``extra`` is
appended in parentheses; only the fields in :data:`CONTEXT_FIELDS` are
rendered.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

# Record attributes rendered as context when present (set via ``extra``).
CONTEXT_FIELDS = ("probe", "rule", "state", "signal")

# Verbose narration level; quiet runs only surface warnings and errors.
VERBOSE_LEVEL = "INFO"
QUIET_LEVEL = "WARNING"


def _component(record: logging.LogRecord) -> str:
    # "checknode.reconciler" -> "reconciler"
    return record.name.rpartition(".")[2]


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class StructuredFormatter(logging.Formatter):
    """Single-line formatter: UTC timestamp, level, component, message, context."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        line = (
            f"{created:%Y-%m-%d %H:%M:%S}.{created.microsecond // 1000:03d} "
            f"{record.levelname:<8} {_component(record)}: {record.getMessage()}"
        )
        context = _context(record)
        if context:
            line += " (" + " ".join(f"{key}={value}" for key, value in context.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        """Render the record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON object with timestamp, level, component, pid, message and any
            context fields.
        """
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "pid": record.process or os.getpid(),
            "message": record.getMessage(),
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that stamps fixed context onto every record.

    Usage:
        probe_logger = get_logger(__name__).with_context(probe="gpu_check")
        probe_logger.info("Beginning run")
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **(self.extra or {})}
        return msg, kwargs


class CheckNodeLogger(logging.Logger):
    """Logger class for checknode modules, adding :meth:`with_context`."""

    def with_context(self, **context: Any) -> ContextAdapter:
        """Bind context fields (probe, rule, ...) to a logger adapter."""
        return ContextAdapter(self, context)


logging.setLoggerClass(CheckNodeLogger)


def get_logger(name: str) -> CheckNodeLogger:
    """Get a logger with the custom CheckNodeLogger class.

    Args:
        name: Logger name (typically __name__).

    Returns:
        CheckNodeLogger instance.
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def resolve_log_level(verbose: bool, level: str | None = None) -> str:
    """Pick the effective log level.

    An explicit level always wins. Otherwise verbose runs narrate at INFO
    and quiet runs only emit warnings and errors, so a healthy node produces
    no output at all.

    Args:
        verbose: Whether verbose narration was requested.
        level: Explicit level override, if any.

    Returns:
        Upper-case log level name.
    """
    if level:
        return level.upper()
    return VERBOSE_LEVEL if verbose else QUIET_LEVEL


def setup_logging(
    level: str = QUIET_LEVEL,
    json_format: bool = False,
    replace_handlers: bool = True,
) -> None:
    """Route log records to stderr at the given level.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_format: Emit JSON objects instead of plain lines.
        replace_handlers: Drop handlers already on the root logger first.
            Pass False to keep them (e.g., pytest's caplog handler).
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(numeric_level)
    stderr_handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())

    root = logging.getLogger()
    if replace_handlers:
        for existing in list(root.handlers):
            root.removeHandler(existing)
    root.addHandler(stderr_handler)
    root.setLevel(numeric_level)
    logging.getLogger("checknode").setLevel(numeric_level)


__all__ = [
    "CheckNodeLogger",
    "ContextAdapter",
    "JSONFormatter",
    "StructuredFormatter",
    "get_logger",
    "resolve_log_level",
    "setup_logging",
]
