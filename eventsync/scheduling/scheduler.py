"""
eventsync.scheduling.scheduler

APScheduler setup for the recurring jobs.

The scrape cycle and the retention cleanup are plain callables; the same
callables back the HTTP trigger and the CLI, so scheduling is just one more
entry point into the same logic.
"""

from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .schedule import Schedule

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {
    "coalesce": True,  # collapse missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 300,
}

_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _job_executed(event: JobExecutionEvent) -> None:
    logger.info(f"Job {event.job_id} finished")


def _job_error(event: JobExecutionEvent) -> None:
    logger.error(f"Job {event.job_id} failed: {event.exception}")


def create_scheduler(timezone: str = "UTC", max_workers: int = 2) -> BackgroundScheduler:
    """
    Create a background scheduler (not started).

    Each job gets at most one running instance; ``shutdown(wait=True)``
    blocks until running jobs have returned.
    """
    scheduler = BackgroundScheduler(
        executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
        job_defaults=JOB_DEFAULTS,
        timezone=timezone,
    )
    scheduler.add_listener(_job_executed, EVENT_JOB_EXECUTED)
    scheduler.add_listener(_job_error, EVENT_JOB_ERROR)
    return scheduler


def _crontab_weekdays(field: str) -> str:
    """
    Rewrite a numeric crontab day-of-week field as day names.

    Crontab counts 0 (or 7) as Sunday while APScheduler counts 0 as Monday;
    names mean the same to both. Fields using names are returned as-is.
    """
    days: list[str] = []
    for token in field.split(","):
        base, _, step = token.partition("/")
        if base in ("*", "?"):
            if not step:
                return field
            start, end = 0, 6
        elif "-" in base and all(part.isdigit() for part in base.split("-", 1)):
            start, end = (int(part) for part in base.split("-", 1))
        elif base.isdigit():
            start = int(base)
            end = 6 if step else start
        else:
            return field
        for day in range(start, end + 1, int(step) if step.isdigit() else 1):
            days.append(_WEEKDAYS[day % 7])
    return ",".join(dict.fromkeys(days)) or field


def build_trigger(schedule: Schedule, timezone: str = "UTC") -> BaseTrigger:
    """Translate a parsed schedule into an APScheduler trigger."""
    if schedule.type == "interval":
        return IntervalTrigger(seconds=int(schedule.value), timezone=timezone)
    fields = str(schedule.value).split()
    fields[4] = _crontab_weekdays(fields[4])
    return CronTrigger.from_crontab(" ".join(fields), timezone=timezone)
