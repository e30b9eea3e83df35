"""
Base Source Adapter.

Abstract base class defining the interface for scraper backend adapters.
The orchestrator only talks to this interface, so tests and alternative
transports can stand in for the HTTP implementation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class FetchResult:
    """
    Result of one scrape request to one backend.

    ``body`` holds the full response text on success and is None on any
    failure; failures are described in ``errors``.
    """

    success: bool
    source_id: str
    body: Optional[str] = None
    status_code: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    fetch_started_at: Optional[datetime] = None
    fetch_ended_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0

    @property
    def has_data(self) -> bool:
        """True when the fetch succeeded with a non-empty body."""
        return self.success and bool(self.body)


@dataclass
class AdapterConfig:
    """
    Base configuration for source adapters.

    Extended by specific adapter types.
    """

    source_id: str
    connect_timeout_s: float = 30.0
    read_timeout_s: float = 4 * 60 * 60.0
    enabled: bool = True
    headers: Dict[str, str] = field(default_factory=dict)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - fetch(): issue one scrape request, never raising on transport errors
        - _validate_config(): validate adapter-specific configuration
    """

    def __init__(self, config: AdapterConfig):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
        """
        self.config = config
        self.logger = logging.getLogger(f"eventsync.adapter.{config.source_id}")
        self._validate_config()

    @property
    def source_id(self) -> str:
        """Get the source identifier (also the scrapingSource tag)."""
        return self.config.source_id

    @abstractmethod
    def fetch(self) -> FetchResult:
        """
        Fetch the raw response body from the source.

        Returns:
            FetchResult; ``success`` is False on network failure, timeout or
            non-2xx status.
        """

    @abstractmethod
    def _validate_config(self) -> None:
        """
        Validate adapter-specific configuration.

        Raises:
            ValueError: If configuration is invalid
        """

    def close(self) -> None:
        """Release any resources held by the adapter."""

    def __enter__(self) -> "BaseSourceAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
