"""Logging setup for mockmode.

Components log through ``logging.getLogger(__name__)``. This module wires
the ``mockmode`` root logger to a handler and provides context fields that
are attached to every record emitted inside a ``log_context`` block.

Example:
    Basic usage::

        from mockmode.log import configure_logging

        configure_logging(level="DEBUG")

    JSON output with context::

        configure_logging(json_format=True)
        with log_context(service="tracker"):
            registry.enable_service("tracker")  # records carry service=tracker
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER = "mockmode"

_context_fields: ContextVar[dict[str, Any] | None] = ContextVar("mockmode_log_context", default=None)


def current_context() -> dict[str, Any]:
    """Fields currently bound by log_context."""
    return dict(_context_fields.get() or {})


class StructuredFormatter(logging.Formatter):
    """JSON formatter for machine consumption.

    Attributes:
        include_location: Whether to include file/line/function in output.
        timestamp_format: 'iso', 'unix', or a strftime format.
        extra_fields: Additional fields to include in every log record.
    """

    def __init__(
        self,
        include_location: bool = False,
        timestamp_format: str = "iso",
        extra_fields: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.include_location = include_location
        self.timestamp_format = timestamp_format
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {}

        if self.timestamp_format == "iso":
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()
        elif self.timestamp_format == "unix":
            log_data["timestamp"] = time.time()
        else:
            log_data["timestamp"] = self.formatTime(record, self.timestamp_format)

        log_data["level"] = record.levelname.lower()
        log_data["message"] = record.getMessage()
        log_data["logger"] = record.name

        if self.include_location:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        context = _context_fields.get()
        if context:
            log_data["context"] = dict(context)

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in self.extra_fields.items():
            if key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development consoles."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, stream: TextIO | None = None) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color(stream or sys.stderr)

    @staticmethod
    def _supports_color(stream: TextIO) -> bool:
        if os.environ.get("NO_COLOR"):
            return False
        if sys.platform == "win32":
            return os.environ.get("ANSICON") is not None or "WT_SESSION" in os.environ
        return hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        base = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        context = _context_fields.get()
        if context:
            base += " | " + " ".join(f"{k}={v}" for k, v in context.items())

        if record.exc_info:
            base += f"\n{self.formatException(record.exc_info)}"

        return base


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    include_location: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the mockmode root logger.

    Replaces any handlers previously installed by this function.

    Args:
        level: Minimum log level (name or number).
        json_format: Emit JSON lines instead of human-readable text.
        include_location: Include file/line/function in JSON output.
        stream: Output stream (defaults to sys.stderr).

    Returns:
        The configured root logger.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.handlers.clear()
    root_logger.propagate = False

    output = stream or sys.stderr
    handler = logging.StreamHandler(output)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(StructuredFormatter(include_location=include_location))
    else:
        handler.setFormatter(HumanReadableFormatter(stream=output))

    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return root_logger


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Add fields to every mockmode log record emitted inside the block.

    Example:
        >>> with log_context(service="tracker"):
        ...     logger.info("Enabling")  # carries service=tracker
    """
    current = dict(_context_fields.get() or {})
    current.update(kwargs)
    token = _context_fields.set(current)
    try:
        yield
    finally:
        _context_fields.reset(token)
