# eventsync/schemas/event.py
"""
Canonical Event Schema for scraped event listings.

Scraper backends emit loosely-typed records whose keys may be missing, null or
of an unexpected type. This schema is the normalized shape those records are
stored in: a fixed set of independently nullable fields plus an open
``additionalData`` bag for every raw key the schema does not know about.

Attributes are snake_case in Python and camelCase on the wire (HTTP responses
and persisted documents).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator
from pydantic.alias_generators import to_camel


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Overflow bag for fields the canonical schema does not model. Values keep
# JSON semantics (string, number, bool, null, list, nested object).
AdditionalData = Dict[str, JsonValue]


# ============================================================================
# CANONICAL EVENT
# ============================================================================


class CanonicalEvent(BaseModel):
    """
    Normalized, persisted representation of one scraped event.

    Every scalar and list field is either a valid value or ``None``; a raw
    value of the wrong type never reaches this model. ``scraped_at`` and
    ``additional_data`` are always present.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0b6f7f0e-4a53-4ad6-9a4c-3f1f9a9d9c2e",
                "title": "Sunburn Arena ft. Alan Walker",
                "category": "Music",
                "location": "Mahalaxmi Race Course, Mumbai",
                "imageUrl": "https://media.example.com/sunburn.jpg",
                "eventDate": "Sat, 13 Dec",
                "eventTime": "4:00 PM",
                "sourceLink": "https://www.district.in/events/sunburn-arena",
                "price": "₹1,499 onwards",
                "description": ["Alan Walker returns to India."],
                "tags": ["EDM", "Outdoor"],
                "genres": ["Electronic"],
                "scrapedAt": "2025-09-08T00:00:04Z",
                "additionalData": {"scrapingSource": "service-3000"},
            }
        },
    )

    # ---- IDENTITY (assigned by storage) ----
    id: Optional[str] = Field(
        default=None,
        description="Opaque identifier assigned by storage on first save",
    )

    # ---- SCALAR FIELDS ----
    title: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    event_date: Optional[str] = Field(
        default=None,
        description="Free-text date as published by the source; never parsed",
    )
    event_time: Optional[str] = None
    source_link: Optional[str] = None
    price: Optional[str] = None

    # ---- LIST FIELDS ----
    description: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    genres: Optional[List[str]] = None

    # ---- PROCESSING METADATA ----
    scraped_at: datetime = Field(default_factory=_utc_now)
    additional_data: AdditionalData = Field(default_factory=dict)

    @field_validator("scraped_at")
    @classmethod
    def normalize_scraped_at(cls, v: datetime) -> datetime:
        """Store scrape timestamps as aware UTC datetimes."""
        return ensure_utc(v)

    @property
    def scraping_source(self) -> Optional[str]:
        """Return the backend tag injected by the normalizer, if any."""
        source = self.additional_data.get("scrapingSource")
        return source if isinstance(source, str) else None

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON document shape (without ``id``)."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})
