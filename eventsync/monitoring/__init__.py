"""Logging utilities for eventsync."""

from .logging import LoggingOptions, setup_logging, with_context

__all__ = ["LoggingOptions", "setup_logging", "with_context"]
