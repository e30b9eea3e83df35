"""Structured logging with context injection.

Features:
- console handler on the ``eventsync`` logger
- JSON logs optional (easy ingestion)
- context injection (cycle_id/source_id/stage) without needing a big framework
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from typing import Any

ROOT_LOGGER_NAME = "eventsync"
_CONTEXT_KEYS = ("cycle_id", "source_id", "stage")

# ---------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render one record as a single-line JSON object."""
        base = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in _CONTEXT_KEYS:
            if hasattr(record, k):
                base[k] = getattr(record, k)

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        # allow structured payload
        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            base["payload"] = payload

        return json.dumps(base, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Format log records as human-readable text."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``LEVEL logger [cycle=.. source=..] message``."""
        parts = [self.formatTime(record), record.levelname, record.name]

        ctx = []
        cycle_id = getattr(record, "cycle_id", None)
        source_id = getattr(record, "source_id", None)
        stage = getattr(record, "stage", None)
        if cycle_id:
            ctx.append(f"cycle={cycle_id}")
        if source_id:
            ctx.append(f"source={source_id}")
        if stage:
            ctx.append(f"stage={stage}")

        if ctx:
            parts.append("[" + " ".join(ctx) + "]")

        parts.append(record.getMessage())
        s = " ".join(parts)

        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)

        return s


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingOptions:
    """Configure logging behavior."""

    level: str = "INFO"
    json_logs: bool = False


def setup_logging(options: LoggingOptions | None = None) -> logging.Logger:
    """
    Configure the ``eventsync`` logger with a single stdout handler.

    Safe to call repeatedly; previous handlers installed here are replaced.
    """
    options = options or LoggingOptions()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, options.level.upper(), logging.INFO))
    logger.propagate = False

    for h in list(logger.handlers):
        if getattr(h, "_eventsync_handler", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logger.level)
    handler.setFormatter(JsonFormatter() if options.json_logs else TextFormatter())
    handler._eventsync_handler = True
    logger.addHandler(handler)
    return logger


# ---------------------------------------------------------------------
# Context injection
# ---------------------------------------------------------------------


class ContextAdapter(logging.LoggerAdapter):
    """Inject context fields into log records."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge adapter context with per-call ``extra``."""
        extra = kwargs.get("extra", {})
        merged = dict(self.extra)
        merged.update(extra)
        kwargs["extra"] = merged
        return msg, kwargs


def with_context(
    logger: logging.Logger,
    *,
    cycle_id: str | None = None,
    source_id: str | None = None,
    stage: str | None = None,
) -> ContextAdapter:
    """Create a context adapter with cycle, source, and stage info."""
    extra: dict[str, Any] = {}
    if cycle_id:
        extra["cycle_id"] = cycle_id
    if source_id:
        extra["source_id"] = source_id
    if stage:
        extra["stage"] = stage
    return ContextAdapter(logger, extra)
