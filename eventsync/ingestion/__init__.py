"""
Scrape ingestion: backend adapters, normalization, orchestration and storage.

Architecture:
    BackendAdapter -> RecordNormalizer -> EventStore, driven per backend by
    ScrapeOrchestrator.
"""
