"""Recurring jobs: schedule parsing and the background scheduler."""

from .schedule import Schedule, next_run_times, parse_schedule
from .scheduler import build_trigger, create_scheduler

__all__ = [
    "Schedule",
    "build_trigger",
    "create_scheduler",
    "next_run_times",
    "parse_schedule",
]
