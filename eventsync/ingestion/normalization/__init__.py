"""
Normalization of raw scraper output.

Usage:
    from eventsync.ingestion.normalization import RecordNormalizer

    normalizer = RecordNormalizer()
    events = normalizer.normalize_batch(response_body, source="service-3000")
"""

from .record_normalizer import PROMOTED_KEYS, SCRAPING_SOURCE_KEY, RecordNormalizer

__all__ = ["PROMOTED_KEYS", "SCRAPING_SOURCE_KEY", "RecordNormalizer"]
