"""
eventsync.

Scrape orchestration and normalization service: fans out to external scraper
backends, normalizes their loosely structured event listings into a canonical
record, and persists each backend's batch as soon as it is ready.
"""

__version__ = "0.1.0"
