"""
Record Normalizer for raw scraper output.

Converts loosely-typed raw records (as emitted by scraper backends) into
CanonicalEvent objects. The normalizer never raises for malformed input:
- a field of the wrong type is logged and stored as None
- "TBD" event dates become None
- every raw key not promoted to a canonical field lands in additionalData,
  together with a scrapingSource marker naming the backend
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from eventsync.schemas.event import CanonicalEvent

logger = logging.getLogger(__name__)

# Raw key -> CanonicalEvent attribute, for string-valued fields.
SCALAR_FIELD_MAP: Dict[str, str] = {
    "title": "title",
    "category": "category",
    "location": "location",
    "image": "image_url",
    "eventDate": "event_date",
    "eventTime": "event_time",
    "eventLink": "source_link",
    "price": "price",
}

# Raw key -> CanonicalEvent attribute, for list-of-string fields.
LIST_FIELD_MAP: Dict[str, str] = {
    "description": "description",
    "tags": "tags",
    "genres": "genres",
}

# Raw key names removed from the overflow bag.
PROMOTED_KEYS = frozenset(SCALAR_FIELD_MAP) | frozenset(LIST_FIELD_MAP)

# Keys accepted by the flexible create endpoint (canonical wire names).
FLEXIBLE_SCALAR_FIELD_MAP: Dict[str, str] = {
    "title": "title",
    "category": "category",
    "location": "location",
    "imageUrl": "image_url",
    "eventDate": "event_date",
    "eventTime": "event_time",
    "sourceLink": "source_link",
    "price": "price",
}

SCRAPING_SOURCE_KEY = "scrapingSource"
UNKNOWN_DATE_MARKER = "TBD"


class RecordNormalizer:
    """
    Normalizes raw scraper records into CanonicalEvent objects.

    The normalizer is stateless apart from its clock, so one instance can be
    shared by every backend task of a scrape cycle.
    """

    def __init__(self, clock=None):
        """
        Initialize the normalizer.

        Args:
            clock: Zero-argument callable returning the scrape timestamp.
                Defaults to the current UTC time.
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ========================================================================
    # SINGLE RECORD
    # ========================================================================

    def normalize(self, raw: Mapping[str, Any], source: str) -> CanonicalEvent:
        """
        Normalize one raw record.

        Args:
            raw: Raw record from a backend (string keys, arbitrary JSON values)
            source: Tag of the backend that produced the record

        Returns:
            CanonicalEvent with scrapedAt stamped and the overflow bag filled
        """
        fields: Dict[str, Any] = {}

        for raw_key, attr in SCALAR_FIELD_MAP.items():
            fields[attr] = self._extract_string(raw, raw_key, source)
        fields["event_date"] = self._normalize_event_date(fields["event_date"])

        for raw_key, attr in LIST_FIELD_MAP.items():
            fields[attr] = self._extract_string_list(raw, raw_key, source)

        additional_data = {
            key: value for key, value in raw.items() if key not in PROMOTED_KEYS
        }
        additional_data[SCRAPING_SOURCE_KEY] = source

        return CanonicalEvent(
            **fields,
            scraped_at=self._clock(),
            additional_data=additional_data,
        )

    def normalize_flexible(self, payload: Mapping[str, Any]) -> CanonicalEvent:
        """
        Normalize an arbitrary client-supplied object.

        Canonical fields are extracted best-effort by their canonical (wire)
        names; the entire payload is retained unchanged in additionalData.

        Unlike the older service this replaces, which copied only the scalar
        fields verbatim, tags and genres are extracted too and a "TBD" event
        date becomes null, so a flexible event queries the same way as a
        scraped one.
        """
        fields: Dict[str, Any] = {}

        for key, attr in FLEXIBLE_SCALAR_FIELD_MAP.items():
            fields[attr] = self._extract_string(payload, key, "flexible")
        fields["event_date"] = self._normalize_event_date(fields["event_date"])

        for key, attr in LIST_FIELD_MAP.items():
            fields[attr] = self._extract_string_list(payload, key, "flexible")

        return CanonicalEvent(
            **fields,
            scraped_at=self._clock(),
            additional_data=dict(payload),
        )

    # ========================================================================
    # BATCH
    # ========================================================================

    def normalize_batch(
        self,
        payload: Union[str, bytes],
        source: str,
    ) -> List[CanonicalEvent]:
        """
        Normalize a backend response body holding a JSON array of raw records.

        A payload that cannot be parsed as an array yields an empty list.
        Individual elements that are not objects are skipped; the remaining
        records are still normalized.

        Args:
            payload: Raw response body
            source: Tag of the backend that produced the payload

        Returns:
            List of CanonicalEvent, in payload order
        """
        try:
            raw_list = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            logger.error(f"Malformed batch from {source}: {e}")
            return []

        if not isinstance(raw_list, list):
            logger.error(
                f"Malformed batch from {source}: expected a JSON array, "
                f"got {type(raw_list).__name__}"
            )
            return []

        events: List[CanonicalEvent] = []
        skipped = 0
        for index, raw in enumerate(raw_list):
            if not isinstance(raw, dict):
                logger.warning(
                    f"Skipping record {index} from {source}: "
                    f"expected an object, got {type(raw).__name__}"
                )
                skipped += 1
                continue
            try:
                events.append(self.normalize(raw, source))
            except Exception:
                logger.exception(f"Skipping record {index} from {source}")
                skipped += 1

        if skipped:
            logger.warning(
                f"Normalized {len(events)} records from {source}, skipped {skipped}"
            )
        return events

    # ========================================================================
    # FIELD EXTRACTION
    # ========================================================================

    @staticmethod
    def _extract_string(
        raw: Mapping[str, Any], key: str, source: str
    ) -> Optional[str]:
        value = raw.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            logger.warning(
                f"Field '{key}' from {source} is {type(value).__name__}, "
                f"expected str; storing null"
            )
            return None
        return value

    @staticmethod
    def _extract_string_list(
        raw: Mapping[str, Any], key: str, source: str
    ) -> Optional[List[str]]:
        value = raw.get(key)
        if value is None:
            return None
        if not isinstance(value, list) or not all(
            isinstance(item, str) for item in value
        ):
            logger.warning(
                f"Field '{key}' from {source} is not a list of strings; storing null"
            )
            return None
        return list(value)

    @staticmethod
    def _normalize_event_date(value: Optional[str]) -> Optional[str]:
        """Map the "TBD" placeholder (any case) to None; keep other text as-is."""
        if value is None:
            return None
        if value.strip().upper() == UNKNOWN_DATE_MARKER:
            return None
        return value
