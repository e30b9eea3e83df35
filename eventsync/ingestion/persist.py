# Persistence layer for scraped events
"""
Persistence Layer for Scraped Events.

Events are stored as documents: a fixed set of canonical columns plus JSONB
for list fields and the open-ended additionalData bag. Two implementations
share the EventStore interface:

- PostgresEventStore: psycopg2 connection pool over a single JSONB table
- InMemoryEventStore: lock-guarded dict for tests and local runs

Stores never deduplicate: saving the same content twice creates two records.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

import psycopg2
import psycopg2.pool
from psycopg2.extras import Json, RealDictCursor, execute_values

from eventsync.configs.settings import Settings
from eventsync.schemas.event import CanonicalEvent, ensure_utc

logger = logging.getLogger(__name__)


class EventStore(ABC):
    """
    Storage collaborator for canonical events.

    Implementations must be safe to call from several orchestrator worker
    threads at once.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def save_all(self, events: Iterable[CanonicalEvent]) -> List[CanonicalEvent]:
        """
        Persist a batch and return copies carrying their assigned ids.

        The batch is written atomically where the backend supports it.
        """

    def save(self, event: CanonicalEvent) -> CanonicalEvent:
        """Persist a single event."""
        return self.save_all([event])[0]

    @abstractmethod
    def delete_scraped_before(self, threshold: datetime) -> int:
        """Delete every event scraped strictly before ``threshold``."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    def find_all(self) -> List[CanonicalEvent]:
        """Return every stored event."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored events."""

    @abstractmethod
    def find_by_title(self, title: str) -> List[CanonicalEvent]:
        """Exact title match."""

    @abstractmethod
    def find_by_category(self, category: str) -> List[CanonicalEvent]:
        """Exact category match."""

    @abstractmethod
    def find_by_location(self, location: str) -> List[CanonicalEvent]:
        """Exact location match."""

    @abstractmethod
    def find_by_event_date(self, event_date: str) -> List[CanonicalEvent]:
        """Exact (free-text) event date match."""

    @abstractmethod
    def find_by_category_and_location(self, category: str, location: str) -> List[CanonicalEvent]:
        """Exact match on both category and location."""

    @abstractmethod
    def find_by_tag(self, tag: str) -> List[CanonicalEvent]:
        """Events whose tags contain ``tag``."""

    @abstractmethod
    def find_by_genre(self, genre: str) -> List[CanonicalEvent]:
        """Events whose genres contain ``genre``."""

    @abstractmethod
    def search_title(self, text: str) -> List[CanonicalEvent]:
        """Case-insensitive substring search on title."""

    @abstractmethod
    def find_scraped_after(self, threshold: datetime) -> List[CanonicalEvent]:
        """Events with scrapedAt strictly after ``threshold``."""

    @abstractmethod
    def find_scraped_before(self, threshold: datetime) -> List[CanonicalEvent]:
        """Events with scrapedAt strictly before ``threshold``."""

    @abstractmethod
    def find_by_additional_field(self, field_name: str) -> List[CanonicalEvent]:
        """Events whose additionalData has the key ``field_name``."""

    @abstractmethod
    def find_by_price_range(self, min_price: float, max_price: float) -> List[CanonicalEvent]:
        """Events whose numeric additionalData.numericPrice is within range (inclusive)."""

    def close(self) -> None:
        """Release resources held by the store."""


# ============================================================================
# POSTGRESQL
# ============================================================================

_CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS scraped_events (
        id TEXT PRIMARY KEY,
        title TEXT,
        category TEXT,
        location TEXT,
        image_url TEXT,
        event_date TEXT,
        event_time TEXT,
        source_link TEXT,
        price TEXT,
        description JSONB,
        tags JSONB,
        genres JSONB,
        scraped_at TIMESTAMPTZ NOT NULL,
        additional_data JSONB NOT NULL DEFAULT '{}'::jsonb
    );
    CREATE INDEX IF NOT EXISTS idx_scraped_events_scraped_at ON scraped_events (scraped_at);
    CREATE INDEX IF NOT EXISTS idx_scraped_events_category ON scraped_events (category);
    CREATE INDEX IF NOT EXISTS idx_scraped_events_location ON scraped_events (location);
"""

_COLUMNS = (
    "id",
    "title",
    "category",
    "location",
    "image_url",
    "event_date",
    "event_time",
    "source_link",
    "price",
    "description",
    "tags",
    "genres",
    "scraped_at",
    "additional_data",
)

_SELECT_SQL = f"SELECT {', '.join(_COLUMNS)} FROM scraped_events"


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresEventStore(EventStore):
    """
    Persists CanonicalEvent documents to PostgreSQL.

    Uses a ThreadedConnectionPool so concurrent backend tasks each get their
    own connection. Every public call is one transaction.
    """

    def __init__(self, pool: psycopg2.pool.AbstractConnectionPool) -> None:
        """Initialize with an existing psycopg2 connection pool."""
        self.pool = pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresEventStore":
        """Create a pool from DATABASE_URL and make sure the table exists."""
        pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=settings.DB_POOL_MIN,
            maxconn=settings.DB_POOL_MAX,
            **settings.get_psycopg2_params(),
        )
        store = cls(pool)
        store.ensure_schema()
        return store

    def _run(self, work: Callable[[Any], Any]) -> Any:
        """Run ``work(cursor)`` in a transaction on a pooled connection."""
        conn = self.pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                result = work(cur)
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def _query(self, where: str = "", params: tuple = ()) -> List[CanonicalEvent]:
        sql = f"{_SELECT_SQL} {where} ORDER BY scraped_at, id"

        def _work(cur):
            cur.execute(sql, params)
            return [self._row_to_event(row) for row in cur.fetchall()]

        return self._run(_work)

    def ensure_schema(self) -> None:
        """Create the events table and indexes if missing."""
        self._run(lambda cur: cur.execute(_CREATE_TABLE_SQL))

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _event_to_row(event_id: str, event: CanonicalEvent) -> tuple:
        return (
            event_id,
            event.title,
            event.category,
            event.location,
            event.image_url,
            event.event_date,
            event.event_time,
            event.source_link,
            event.price,
            Json(event.description) if event.description is not None else None,
            Json(event.tags) if event.tags is not None else None,
            Json(event.genres) if event.genres is not None else None,
            event.scraped_at,
            Json(event.additional_data),
        )

    @staticmethod
    def _row_to_event(row: dict) -> CanonicalEvent:
        return CanonicalEvent(**{column: row[column] for column in _COLUMNS})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_all(self, events: Iterable[CanonicalEvent]) -> List[CanonicalEvent]:
        """Insert a batch in one transaction using execute_values."""
        stamped = [event.model_copy(update={"id": str(uuid.uuid4())}) for event in events]
        if not stamped:
            return []

        rows = [self._event_to_row(event.id, event) for event in stamped]

        def _work(cur):
            execute_values(
                cur,
                f"INSERT INTO scraped_events ({', '.join(_COLUMNS)}) VALUES %s",
                rows,
            )

        self._run(_work)
        logger.debug(f"Inserted {len(stamped)} events")
        return stamped

    def delete_scraped_before(self, threshold: datetime) -> int:
        """Delete old events and return the number removed."""

        def _work(cur):
            cur.execute(
                "DELETE FROM scraped_events WHERE scraped_at < %s",
                (ensure_utc(threshold),),
            )
            return cur.rowcount

        return self._run(_work)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_all(self) -> List[CanonicalEvent]:
        return self._query()

    def count(self) -> int:
        def _work(cur):
            cur.execute("SELECT COUNT(*) AS n FROM scraped_events")
            return cur.fetchone()["n"]

        return self._run(_work)

    def find_by_title(self, title: str) -> List[CanonicalEvent]:
        return self._query("WHERE title = %s", (title,))

    def find_by_category(self, category: str) -> List[CanonicalEvent]:
        return self._query("WHERE category = %s", (category,))

    def find_by_location(self, location: str) -> List[CanonicalEvent]:
        return self._query("WHERE location = %s", (location,))

    def find_by_event_date(self, event_date: str) -> List[CanonicalEvent]:
        return self._query("WHERE event_date = %s", (event_date,))

    def find_by_category_and_location(self, category: str, location: str) -> List[CanonicalEvent]:
        return self._query("WHERE category = %s AND location = %s", (category, location))

    def find_by_tag(self, tag: str) -> List[CanonicalEvent]:
        return self._query("WHERE tags @> %s", (Json([tag]),))

    def find_by_genre(self, genre: str) -> List[CanonicalEvent]:
        return self._query("WHERE genres @> %s", (Json([genre]),))

    def search_title(self, text: str) -> List[CanonicalEvent]:
        return self._query("WHERE title ILIKE %s", (f"%{_escape_like(text)}%",))

    def find_scraped_after(self, threshold: datetime) -> List[CanonicalEvent]:
        return self._query("WHERE scraped_at > %s", (ensure_utc(threshold),))

    def find_scraped_before(self, threshold: datetime) -> List[CanonicalEvent]:
        return self._query("WHERE scraped_at < %s", (ensure_utc(threshold),))

    def find_by_additional_field(self, field_name: str) -> List[CanonicalEvent]:
        return self._query("WHERE jsonb_exists(additional_data, %s)", (field_name,))

    def find_by_price_range(self, min_price: float, max_price: float) -> List[CanonicalEvent]:
        return self._query(
            """
            WHERE CASE
                WHEN jsonb_typeof(additional_data->'numericPrice') = 'number'
                THEN (additional_data->>'numericPrice')::numeric
            END BETWEEN %s AND %s
            """,
            (min_price, max_price),
        )

    def close(self) -> None:
        """Close all pooled connections."""
        self.pool.closeall()


# ============================================================================
# IN-MEMORY
# ============================================================================


class InMemoryEventStore(EventStore):
    """In-memory implementation of the event store."""

    def __init__(self) -> None:
        """Initialize with an empty collection."""
        self._events: dict[str, CanonicalEvent] = {}
        self._lock = threading.Lock()

    def _filter(self, predicate: Callable[[CanonicalEvent], bool]) -> List[CanonicalEvent]:
        with self._lock:
            matches = [copy.deepcopy(e) for e in self._events.values() if predicate(e)]
        return sorted(matches, key=lambda e: (e.scraped_at, e.id or ""))

    def save_all(self, events: Iterable[CanonicalEvent]) -> List[CanonicalEvent]:
        stamped = [
            event.model_copy(update={"id": str(uuid.uuid4())}, deep=True) for event in events
        ]
        with self._lock:
            for event in stamped:
                self._events[event.id] = copy.deepcopy(event)
        return stamped

    def delete_scraped_before(self, threshold: datetime) -> int:
        threshold = ensure_utc(threshold)
        with self._lock:
            expired = [k for k, e in self._events.items() if e.scraped_at < threshold]
            for key in expired:
                del self._events[key]
        return len(expired)

    def find_all(self) -> List[CanonicalEvent]:
        return self._filter(lambda e: True)

    def count(self) -> int:
        with self._lock:
            return len(self._events)

    def find_by_title(self, title: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: e.title == title)

    def find_by_category(self, category: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: e.category == category)

    def find_by_location(self, location: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: e.location == location)

    def find_by_event_date(self, event_date: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: e.event_date == event_date)

    def find_by_category_and_location(self, category: str, location: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: e.category == category and e.location == location)

    def find_by_tag(self, tag: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: tag in (e.tags or []))

    def find_by_genre(self, genre: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: genre in (e.genres or []))

    def search_title(self, text: str) -> List[CanonicalEvent]:
        needle = text.casefold()
        return self._filter(lambda e: e.title is not None and needle in e.title.casefold())

    def find_scraped_after(self, threshold: datetime) -> List[CanonicalEvent]:
        threshold = ensure_utc(threshold)
        return self._filter(lambda e: e.scraped_at > threshold)

    def find_scraped_before(self, threshold: datetime) -> List[CanonicalEvent]:
        threshold = ensure_utc(threshold)
        return self._filter(lambda e: e.scraped_at < threshold)

    def find_by_additional_field(self, field_name: str) -> List[CanonicalEvent]:
        return self._filter(lambda e: field_name in e.additional_data)

    def find_by_price_range(self, min_price: float, max_price: float) -> List[CanonicalEvent]:
        def _in_range(e: CanonicalEvent) -> bool:
            value = e.additional_data.get("numericPrice")
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            return min_price <= value <= max_price

        return self._filter(_in_range)


def build_store(settings: Settings, pool: Optional[psycopg2.pool.AbstractConnectionPool] = None) -> EventStore:
    """
    Create the configured event store.

    Args:
        settings: Application settings (STORAGE_BACKEND, DATABASE_URL)
        pool: Optional existing psycopg2 pool for the postgres backend

    Returns:
        EventStore implementation
    """
    if settings.STORAGE_BACKEND == "memory":
        logger.info("Using in-memory event store")
        return InMemoryEventStore()

    if pool is not None:
        store = PostgresEventStore(pool)
        store.ensure_schema()
        return store

    logger.info("Using PostgreSQL event store")
    return PostgresEventStore.from_settings(settings)
