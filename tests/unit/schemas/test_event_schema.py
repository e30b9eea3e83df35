"""
Unit tests for the canonical event schema.

Tests for CanonicalEvent aliasing, timestamp handling and serialization.
"""

from datetime import datetime, timedelta, timezone

from eventsync.schemas.event import CanonicalEvent, ensure_utc

# =============================================================================
# TEST CLASSES
# =============================================================================


class TestEnsureUtc:
    """Tests for ensure_utc."""

    def test_naive_is_read_as_utc(self):
        """Should attach UTC to naive datetimes without shifting them."""
        value = ensure_utc(datetime(2024, 6, 9, 12, 0))
        assert value == datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        """Should convert aware datetimes to UTC."""
        ist = timezone(timedelta(hours=5, minutes=30))
        value = ensure_utc(datetime(2024, 6, 9, 17, 30, tzinfo=ist))
        assert value == datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)
        assert value.utcoffset() == timedelta(0)


class TestCanonicalEvent:
    """Tests for CanonicalEvent."""

    def test_defaults(self):
        """Should default every canonical field to None."""
        event = CanonicalEvent()
        assert event.id is None
        assert event.title is None
        assert event.description is None
        assert event.additional_data == {}
        assert event.scraped_at.tzinfo is not None

    def test_accepts_aliases_and_names(self):
        """Should populate from camelCase aliases and snake_case names."""
        by_alias = CanonicalEvent.model_validate({"imageUrl": "a.jpg", "sourceLink": "x"})
        by_name = CanonicalEvent(image_url="a.jpg", source_link="x")
        assert by_alias.image_url == by_name.image_url == "a.jpg"
        assert by_alias.source_link == by_name.source_link == "x"

    def test_naive_scraped_at_becomes_utc(self):
        """Should store scraped_at as an aware UTC datetime."""
        event = CanonicalEvent(scraped_at=datetime(2024, 1, 1, 0, 0))
        assert event.scraped_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_scraping_source(self):
        """Should expose the scrapingSource tag when it is a string."""
        assert CanonicalEvent(additional_data={"scrapingSource": "service-3000"}).scraping_source == "service-3000"
        assert CanonicalEvent(additional_data={"scrapingSource": 3}).scraping_source is None
        assert CanonicalEvent().scraping_source is None

    def test_to_document_uses_camel_case(self):
        """Should serialize to the camelCase document without the id."""
        event = CanonicalEvent(
            id="abc",
            title="Show",
            image_url="img.jpg",
            event_date="Sat, 13 Dec",
            tags=["Live"],
            scraped_at=datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc),
            additional_data={"venueCapacity": 500, "nested": {"a": [1, None]}},
        )
        doc = event.to_document()
        assert "id" not in doc
        assert doc["imageUrl"] == "img.jpg"
        assert doc["eventDate"] == "Sat, 13 Dec"
        assert doc["tags"] == ["Live"]
        assert doc["scrapedAt"].startswith("2024-06-09T12:00:00")
        assert doc["additionalData"] == {"venueCapacity": 500, "nested": {"a": [1, None]}}

    def test_model_copy_keeps_original(self):
        """Should leave the original untouched when a copy gets an id."""
        event = CanonicalEvent(title="Show")
        copy = event.model_copy(update={"id": "1"})
        assert event.id is None
        assert copy.id == "1"
