"""
Source Adapters for scraper backends.

Adapters provide a unified interface for triggering one scrape on one backend:

Usage:
    from eventsync.ingestion.adapters import BackendAdapter, BackendAdapterConfig

    config = BackendAdapterConfig(
        source_id="service-3000",
        endpoint="http://localhost:3000/scrape",
        base_url="https://www.district.in",
    )
    with BackendAdapter(config) as adapter:
        result = adapter.fetch()
"""

from .backend_adapter import BackendAdapter, BackendAdapterConfig
from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult

__all__ = [
    "AdapterConfig",
    "BaseSourceAdapter",
    "BackendAdapter",
    "BackendAdapterConfig",
    "FetchResult",
]
