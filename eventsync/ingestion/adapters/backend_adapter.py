"""
Scraper Backend Adapter.

Adapter for triggering one external scraper service over HTTP. The backend
receives ``{"baseUrl": "<site>"}`` and answers, possibly hours later, with a
JSON array of raw event records.

Failures (connection errors, timeouts, non-2xx statuses) are caught here and
reported as a FetchResult without a body, so one backend's outage never
aborts a scrape cycle. There are no retries: the next scheduled cycle is the
retry.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import requests
from requests.adapters import HTTPAdapter

from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult

_SLOW_REQUEST_SECONDS = 15 * 60.0


@dataclass
class BackendAdapterConfig(AdapterConfig):
    """Configuration for a scraper backend."""

    endpoint: str = ""
    base_url: str = ""

    @property
    def request_payload(self) -> dict:
        """Request body naming the site the backend should scrape."""
        return {"baseUrl": self.base_url}

    @property
    def timeout(self) -> tuple[float, float]:
        """(connect, read) timeout tuple for requests."""
        return self.connect_timeout_s, self.read_timeout_s


class BackendAdapter(BaseSourceAdapter):
    """
    Adapter for scraper backends reachable over HTTP.

    A short connect timeout detects unreachable backends quickly, while the
    read timeout is hours-scale because scraping a full site is slow.
    """

    def __init__(self, config: BackendAdapterConfig, session: requests.Session | None = None):
        """
        Initialize the backend adapter.

        Args:
            config: BackendAdapterConfig with endpoint and timeouts
            session: Optional pre-built session (tests inject a mock here)
        """
        super().__init__(config)
        self._session = session or self._build_session()

    @property
    def backend_config(self) -> BackendAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        """Validate backend configuration."""
        cfg = self.backend_config
        if not cfg.endpoint:
            raise ValueError(f"Backend '{cfg.source_id}' requires an endpoint")
        if not cfg.endpoint.startswith(("http://", "https://")):
            raise ValueError(
                f"Backend '{cfg.source_id}' endpoint must be an http(s) URL: {cfg.endpoint}"
            )
        if cfg.connect_timeout_s <= 0 or cfg.read_timeout_s <= 0:
            raise ValueError(f"Backend '{cfg.source_id}' timeouts must be positive")

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                **self.backend_config.headers,
            }
        )
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fetch(self) -> FetchResult:
        """
        Trigger one scrape on the backend and return its raw response body.

        Returns:
            FetchResult with ``body`` set on a 2xx response, otherwise with
            ``success=False`` and the failure recorded in ``errors``.
        """
        cfg = self.backend_config
        fetch_started = datetime.now(UTC)
        status_code = None

        self.logger.info(f"Requesting scrape of {cfg.base_url} from {cfg.endpoint}")
        try:
            response = self._session.post(
                cfg.endpoint,
                json=cfg.request_payload,
                timeout=cfg.timeout,
            )
            status_code = response.status_code
            response.raise_for_status()
            body = response.text
        except requests.Timeout as e:
            self.logger.error(f"Timed out calling {cfg.endpoint}: {e}")
            return self._failure(fetch_started, status_code, f"timeout: {e}")
        except requests.RequestException as e:
            self.logger.error(f"Error calling {cfg.endpoint}: {e}")
            return self._failure(fetch_started, status_code, str(e))

        fetch_ended = datetime.now(UTC)
        elapsed = (fetch_ended - fetch_started).total_seconds()
        if elapsed > _SLOW_REQUEST_SECONDS:
            self.logger.warning(f"Slow scrape from {cfg.endpoint}: {elapsed:.0f}s")

        return FetchResult(
            success=True,
            source_id=cfg.source_id,
            body=body,
            status_code=status_code,
            fetch_started_at=fetch_started,
            fetch_ended_at=fetch_ended,
        )

    def _failure(self, started_at: datetime, status_code: int | None, error: str) -> FetchResult:
        return FetchResult(
            success=False,
            source_id=self.source_id,
            status_code=status_code,
            errors=[error],
            fetch_started_at=started_at,
            fetch_ended_at=datetime.now(UTC),
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
