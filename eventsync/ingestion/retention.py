"""
Retention cleanup.

Removes stored events older than the retention window so the store only
holds the last few days of scrapes.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional

from eventsync.ingestion.persist import EventStore

logger = logging.getLogger(__name__)


def purge_expired_events(store: EventStore, retention_days: int, now: Optional[datetime] = None) -> int:
    """
    Delete every event scraped strictly before ``now - retention_days``.

    Args:
        store: Event store to clean up
        retention_days: Size of the retention window in days
        now: Reference time (defaults to the current UTC time)

    Returns:
        Number of deleted events
    """
    if retention_days < 0:
        raise ValueError(f"retention_days must be >= 0, got {retention_days}")

    threshold = (now or datetime.now(UTC)) - timedelta(days=retention_days)
    deleted = store.delete_scraped_before(threshold)
    logger.info(f"Retention cleanup deleted {deleted} events scraped before {threshold.isoformat()}")
    return deleted
