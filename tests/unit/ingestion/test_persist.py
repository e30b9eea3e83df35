"""
Unit tests for the persist module.

Tests for InMemoryEventStore queries and PostgresEventStore against a
mocked psycopg2 pool.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from eventsync.configs.settings import Settings
from eventsync.ingestion.normalization import RecordNormalizer
from eventsync.ingestion.persist import (
    InMemoryEventStore,
    PostgresEventStore,
    _escape_like,
    build_store,
)

T0 = datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def populated_store(store, create_event):
    """Store holding a small mix of events."""
    store.save_all(
        [
            create_event(title="Sunburn Arena", category="Music", location="Mumbai", tags=["EDM"], genres=["Electronic"]),
            create_event(title="Stand-up Night", category="Comedy", location="Delhi", tags=["Live"], genres=None),
            create_event(
                title="Jazz 100% Live",
                category="Music",
                location="Delhi",
                event_date="Sat, 13 Dec",
                additional_data={"numericPrice": 499, "venueCapacity": 200},
            ),
            create_event(title=None, category="Music", additional_data={"numericPrice": "free"}),
        ]
    )
    return store


@pytest.fixture
def pg():
    """PostgresEventStore over a mocked pool; returns (store, pool, conn, cursor)."""
    pool = MagicMock()
    conn = MagicMock()
    cursor = MagicMock()
    pool.getconn.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cursor
    return PostgresEventStore(pool), pool, conn, cursor


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestInMemoryWrites:
    """Tests for InMemoryEventStore writes."""

    def test_save_all_assigns_ids(self, store, create_event):
        """Should return copies with fresh ids and leave inputs untouched."""
        event = create_event()
        saved = store.save_all([event, event])
        assert event.id is None
        assert len({s.id for s in saved}) == 2
        assert store.count() == 2

    def test_save_all_empty(self, store):
        """Should do nothing for an empty batch."""
        assert store.save_all([]) == []
        assert store.count() == 0

    def test_save_single(self, store, create_event):
        """Should save one event."""
        saved = store.save(create_event(title="One"))
        assert saved.id is not None
        assert store.find_all()[0].title == "One"

    def test_returned_events_are_copies(self, store, create_event):
        """Should not let callers mutate stored events."""
        store.save(create_event(tags=["a"]))
        store.find_all()[0].tags.append("b")
        assert store.find_all()[0].tags == ["a"]

    def test_identical_content_is_not_deduplicated(self, store, raw_record):
        """Should keep two records built from the same raw content."""
        normalizer = RecordNormalizer()
        store.save(normalizer.normalize(raw_record(), "service-3000"))
        store.save(normalizer.normalize(raw_record(), "service-3000"))
        assert len(store.find_by_title("Test Event")) == 2


class TestInMemoryQueries:
    """Tests for InMemoryEventStore queries."""

    def test_find_by_category(self, populated_store):
        """Should match category exactly."""
        assert len(populated_store.find_by_category("Music")) == 3
        assert populated_store.find_by_category("music") == []

    def test_find_by_location(self, populated_store):
        """Should match location exactly."""
        assert {e.title for e in populated_store.find_by_location("Delhi")} == {"Stand-up Night", "Jazz 100% Live"}

    def test_find_by_category_and_location(self, populated_store):
        """Should require both to match."""
        assert [e.title for e in populated_store.find_by_category_and_location("Music", "Delhi")] == ["Jazz 100% Live"]

    def test_find_by_title_and_event_date(self, populated_store):
        """Should match title and event date exactly."""
        assert len(populated_store.find_by_title("Sunburn Arena")) == 1
        assert [e.title for e in populated_store.find_by_event_date("Sat, 13 Dec")] == ["Jazz 100% Live"]

    def test_find_by_tag_and_genre(self, populated_store):
        """Should match list membership."""
        assert [e.title for e in populated_store.find_by_tag("EDM")] == ["Sunburn Arena"]
        assert [e.title for e in populated_store.find_by_genre("Electronic")] == ["Sunburn Arena"]
        assert populated_store.find_by_genre("Rock") == []

    def test_search_title_is_case_insensitive(self, populated_store):
        """Should match substrings regardless of case."""
        assert [e.title for e in populated_store.search_title("sunBURN")] == ["Sunburn Arena"]

    def test_search_title_treats_wildcards_literally(self, populated_store):
        """Should treat % literally."""
        assert [e.title for e in populated_store.search_title("100%")] == ["Jazz 100% Live"]
        assert populated_store.search_title("%x%") == []

    def test_find_by_additional_field(self, populated_store):
        """Should match events whose additionalData has the key."""
        assert [e.title for e in populated_store.find_by_additional_field("venueCapacity")] == ["Jazz 100% Live"]

    def test_find_by_price_range(self, populated_store):
        """Should match numeric prices within the inclusive range."""
        assert [e.title for e in populated_store.find_by_price_range(499, 499)] == ["Jazz 100% Live"]
        assert populated_store.find_by_price_range(0, 100) == []


class TestScrapedAtQueries:
    """Tests for scrapedAt comparisons."""

    def test_find_scraped_after_is_strict(self, store, create_event):
        """Should exclude an event scraped exactly at the threshold."""
        store.save(create_event(title="at", scraped_at=T0))
        store.save(create_event(title="after", scraped_at=T0 + timedelta(microseconds=1)))
        assert [e.title for e in store.find_scraped_after(T0)] == ["after"]

    def test_find_scraped_after_across_cycles(self, store, raw_record):
        """Should return only the later cycle's records."""
        first = RecordNormalizer(clock=lambda: T0)
        second = RecordNormalizer(clock=lambda: T0 + timedelta(hours=1))
        store.save_all([first.normalize(raw_record(title="old"), "service-3000")])
        store.save_all([second.normalize(raw_record(title="new"), "service-3000")])

        assert [e.title for e in store.find_scraped_after(T0)] == ["new"]
        assert len(store.find_scraped_after(T0 - timedelta(seconds=1))) == 2

    def test_naive_threshold_is_utc(self, store, create_event):
        """Should read a naive threshold as UTC."""
        store.save(create_event(scraped_at=T0))
        assert store.find_scraped_after(datetime(2024, 6, 9, 11, 59)) != []
        assert store.find_scraped_after(datetime(2024, 6, 9, 12, 0)) == []

    def test_find_scraped_before_is_strict(self, store, create_event):
        """Should exclude an event scraped exactly at the threshold."""
        store.save(create_event(title="at", scraped_at=T0))
        store.save(create_event(title="before", scraped_at=T0 - timedelta(seconds=1)))
        assert [e.title for e in store.find_scraped_before(T0)] == ["before"]

    def test_delete_scraped_before(self, store, create_event):
        """Should delete strictly older events and return the count."""
        store.save(create_event(title="old", scraped_at=T0 - timedelta(days=6)))
        store.save(create_event(title="edge", scraped_at=T0))
        assert store.delete_scraped_before(T0) == 1
        assert [e.title for e in store.find_all()] == ["edge"]


class TestPostgresEventStore:
    """Tests for PostgresEventStore with a mocked pool."""

    def test_save_all_batch_insert(self, pg, create_event):
        """Should insert the batch in one transaction with execute_values."""
        store, pool, conn, cursor = pg
        with patch("eventsync.ingestion.persist.execute_values") as mock_execute_values:
            saved = store.save_all([create_event(title="a"), create_event(title="b")])

        assert len(saved) == 2
        assert all(s.id for s in saved)
        mock_execute_values.assert_called_once()
        args = mock_execute_values.call_args.args
        assert args[0] is cursor
        assert "INSERT INTO scraped_events" in args[1]
        assert [row[0] for row in args[2]] == [s.id for s in saved]
        conn.commit.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    def test_save_all_empty_skips_database(self, pg):
        """Should not touch the pool for an empty batch."""
        store, pool, _, _ = pg
        assert store.save_all([]) == []
        pool.getconn.assert_not_called()

    def test_failure_rolls_back(self, pg, create_event):
        """Should roll back, return the connection and re-raise."""
        store, pool, conn, _ = pg
        with patch("eventsync.ingestion.persist.execute_values", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                store.save_all([create_event()])
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_find_scraped_after_uses_strict_comparison(self, pg):
        """Should query with a strict greater-than."""
        store, _, _, cursor = pg
        cursor.fetchall.return_value = []
        store.find_scraped_after(datetime(2024, 6, 9, 12, 0))
        sql, params = cursor.execute.call_args.args
        assert "scraped_at > %s" in sql
        assert params == (T0,)

    def test_row_mapping(self, pg):
        """Should build CanonicalEvent objects from rows."""
        store, _, _, cursor = pg
        cursor.fetchall.return_value = [
            {
                "id": "1",
                "title": "Show",
                "category": "Music",
                "location": None,
                "image_url": None,
                "event_date": None,
                "event_time": None,
                "source_link": None,
                "price": None,
                "description": ["x"],
                "tags": None,
                "genres": None,
                "scraped_at": T0,
                "additional_data": {"scrapingSource": "service-3000"},
            }
        ]
        events = store.find_by_category("Music")
        assert events[0].id == "1"
        assert events[0].description == ["x"]
        assert events[0].scraping_source == "service-3000"
        sql, params = cursor.execute.call_args.args
        assert "WHERE category = %s" in sql
        assert params == ("Music",)

    def test_search_title_escapes_wildcards(self, pg):
        """Should escape LIKE wildcards in the search text."""
        store, _, _, cursor = pg
        cursor.fetchall.return_value = []
        store.search_title("100%_off")
        sql, params = cursor.execute.call_args.args
        assert "ILIKE" in sql
        assert params == ("%100\\%\\_off%",)

    def test_delete_returns_rowcount(self, pg):
        """Should return the number of deleted rows."""
        store, _, _, cursor = pg
        cursor.rowcount = 3
        assert store.delete_scraped_before(T0) == 3

    def test_count(self, pg):
        """Should return the row count."""
        store, _, _, cursor = pg
        cursor.fetchone.return_value = {"n": 7}
        assert store.count() == 7

    def test_close_closes_pool(self, pg):
        """Should close every pooled connection."""
        store, pool, _, _ = pg
        store.close()
        pool.closeall.assert_called_once()


class TestHelpers:
    """Tests for module helpers."""

    def test_escape_like(self):
        """Should escape backslash, percent and underscore."""
        assert _escape_like("a\\b%c_d") == "a\\\\b\\%c\\_d"

    def test_build_store_memory(self):
        """Should build an in-memory store."""
        settings = Settings(_env_file=None, STORAGE_BACKEND="memory")
        assert isinstance(build_store(settings), InMemoryEventStore)

    def test_build_store_with_pool(self):
        """Should wrap an existing pool and ensure the schema."""
        settings = Settings(_env_file=None, DATABASE_URL="postgresql://u:p@localhost:5432/db")
        pool = MagicMock()
        store = build_store(settings, pool=pool)
        assert isinstance(store, PostgresEventStore)
        cursor = pool.getconn.return_value.cursor.return_value.__enter__.return_value
        assert "CREATE TABLE IF NOT EXISTS scraped_events" in cursor.execute.call_args.args[0]
