"""Wiring of the recurring scrape and retention jobs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from eventsync.configs.settings import Settings
from eventsync.ingestion.orchestrator import ScrapeOrchestrator
from eventsync.ingestion.persist import EventStore
from eventsync.ingestion.retention import purge_expired_events

from .schedule import Schedule, parse_schedule
from .scheduler import build_trigger, create_scheduler

logger = logging.getLogger(__name__)

SCRAPE_JOB = "scrape_cycle"
CLEANUP_JOB = "retention_cleanup"


def job_schedules(settings: Settings) -> dict[str, Schedule]:
    """Resolve the schedule of each recurring job from settings."""
    schedules = {}
    for name, expression in ((SCRAPE_JOB, settings.SCRAPE_CRON), (CLEANUP_JOB, settings.CLEANUP_CRON)):
        schedule = parse_schedule({"frequency": expression})
        if schedule is None:
            raise ValueError(f"Invalid schedule for {name}: {expression!r}")
        schedules[name] = schedule
    return schedules


def build_scheduler(settings: Settings, store: EventStore, orchestrator: ScrapeOrchestrator) -> BackgroundScheduler:
    """Create a scheduler carrying the scrape and retention jobs (not started)."""
    tz = settings.SCHEDULER_TIMEZONE
    scheduler = create_scheduler(timezone=tz)
    schedules = job_schedules(settings)
    scheduler.add_job(
        orchestrator.run_cycle,
        build_trigger(schedules[SCRAPE_JOB], tz),
        id=SCRAPE_JOB,
        name=SCRAPE_JOB,
    )
    scheduler.add_job(
        purge_expired_events,
        build_trigger(schedules[CLEANUP_JOB], tz),
        args=[store, settings.RETENTION_DAYS],
        id=CLEANUP_JOB,
        name=CLEANUP_JOB,
    )
    logger.info(f"Scheduled {SCRAPE_JOB} ({schedules[SCRAPE_JOB].summary()}) and {CLEANUP_JOB} ({schedules[CLEANUP_JOB].summary()})")
    return scheduler
