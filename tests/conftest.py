"""
Shared pytest fixtures for the eventsync test suite.

Provides factories for raw backend records, canonical events, stub adapters
and an in-memory event store.
"""

import json
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import pytest

from eventsync.ingestion.adapters import AdapterConfig, BaseSourceAdapter, FetchResult
from eventsync.ingestion.persist import InMemoryEventStore
from eventsync.schemas.event import CanonicalEvent


class StubAdapter(BaseSourceAdapter):
    """
    Adapter returning a canned response.

    ``body`` may be a list (serialized to JSON), a raw string, or None for a
    failed fetch. ``before_return`` runs just before the result is returned,
    letting tests block a backend until they release it.
    """

    def __init__(
        self,
        source_id: str,
        body: Any = None,
        success: bool = True,
        error: str = "connection refused",
        before_return: Optional[Callable[[], None]] = None,
    ):
        super().__init__(AdapterConfig(source_id=source_id))
        if isinstance(body, (list, dict)):
            body = json.dumps(body)
        self.body = body
        self.success = success
        self.error = error
        self.before_return = before_return
        self.calls = 0
        self.closed = False
        self.finished = threading.Event()

    def _validate_config(self) -> None:
        pass

    def fetch(self) -> FetchResult:
        self.calls += 1
        try:
            if self.before_return is not None:
                self.before_return()
            if not self.success:
                return FetchResult(success=False, source_id=self.source_id, errors=[self.error])
            return FetchResult(success=True, source_id=self.source_id, body=self.body, status_code=200)
        finally:
            self.finished.set()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def raw_record():
    """
    Return a function that creates raw backend records with sensible defaults.

    Example:
        record = raw_record(title="My Event", eventDate="TBD")
    """

    def _raw_record(title: str = "Test Event", **kwargs) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "title": title,
            "category": "Music",
            "location": "Jio World Garden, Mumbai",
            "image": "https://media.example.com/test.jpg",
            "eventDate": "Sat, 13 Dec",
            "eventTime": "7:00 PM",
            "eventLink": "https://www.district.in/events/test-event",
            "price": "₹999 onwards",
            "description": ["A test event."],
            "tags": ["Live"],
            "genres": ["Pop"],
        }
        record.update(kwargs)
        return record

    return _raw_record


@pytest.fixture
def raw_records(raw_record):
    """Return five distinct raw records."""
    return [raw_record(title=f"Event {i}") for i in range(5)]


@pytest.fixture
def create_event():
    """
    Return a function that creates CanonicalEvent objects with sensible defaults.

    All defaults can be overridden via keyword arguments.
    """

    def _create_event(
        title: str = "Test Event",
        scraped_at: Optional[datetime] = None,
        **kwargs,
    ) -> CanonicalEvent:
        defaults: Dict[str, Any] = {
            "title": title,
            "category": "Music",
            "location": "Mumbai",
            "tags": ["Live"],
            "genres": ["Pop"],
            "scraped_at": scraped_at or datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc),
            "additional_data": {"scrapingSource": "service-3000"},
        }
        defaults.update(kwargs)
        return CanonicalEvent(**defaults)

    return _create_event


@pytest.fixture
def store():
    """Return an empty in-memory event store."""
    return InMemoryEventStore()


@pytest.fixture
def stub_adapter():
    """Return the StubAdapter class for building canned backends."""
    return StubAdapter


@pytest.fixture
def fixed_clock():
    """Return a clock function pinned to a known instant."""
    instant = datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)
    return lambda: instant
