"""Backend configuration loader for eventsync."""

import re
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from eventsync.configs.settings import Settings
from eventsync.ingestion.adapters import BackendAdapterConfig

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class Config:
    """Resolves the list of scraper backends from settings or YAML."""

    CONFIG_DIR = Path(__file__).parent.resolve()
    EXAMPLE_BACKENDS_PATH = CONFIG_DIR / "backends.example.yaml"

    def __init__(self, settings: Settings):
        """Initialize with application settings."""
        self.settings = settings

    def load_backends(self) -> list[BackendAdapterConfig]:
        """
        Build one BackendAdapterConfig per configured backend.

        Uses BACKENDS_CONFIG_PATH when set, SCRAPER_BACKENDS otherwise.

        Raises:
            FileNotFoundError: If the YAML file is missing
            ValueError: If the configuration is malformed or has duplicate ids
        """
        if self.settings.BACKENDS_CONFIG_PATH is not None:
            backends = self._load_yaml_backends(Path(self.settings.BACKENDS_CONFIG_PATH))
        else:
            backends = self._backends_from_addresses()

        seen: set[str] = set()
        for backend in backends:
            if backend.source_id in seen:
                raise ValueError(f"Duplicate backend source_id: {backend.source_id}")
            seen.add(backend.source_id)
        return backends

    # ------------------------------------------------------------------
    # SCRAPER_BACKENDS
    # ------------------------------------------------------------------

    def _backends_from_addresses(self) -> list[BackendAdapterConfig]:
        """
        Turn SCRAPER_BACKENDS into backend configs.

        Backends are tagged ``service-<port>``; when two addresses share a
        port the host is added, giving ``service-<host>-<port>``.
        """
        endpoints = [self._endpoint_for(a) for a in self.settings.backend_addresses()]
        ports = [urlsplit(e).port for e in endpoints]
        return [
            self._backend_from_endpoint(endpoint, qualify_host=port is not None and ports.count(port) > 1)
            for endpoint, port in zip(endpoints, ports)
        ]

    def _endpoint_for(self, address: str) -> str:
        """Turn "host:port" (or a full URL) into a scrape endpoint."""
        if "://" in address:
            endpoint = address
        else:
            endpoint = f"http://{address}{self.settings.SCRAPER_PATH}"
        if not urlsplit(endpoint).hostname:
            raise ValueError(f"Invalid scraper backend address: {address!r}")
        return endpoint

    def _backend_from_endpoint(self, endpoint: str, qualify_host: bool = False) -> BackendAdapterConfig:
        parts = urlsplit(endpoint)
        if parts.port is None:
            source_id = f"service-{parts.hostname}"
        elif qualify_host:
            source_id = f"service-{parts.hostname}-{parts.port}"
        else:
            source_id = f"service-{parts.port}"

        return BackendAdapterConfig(
            source_id=source_id,
            endpoint=endpoint,
            base_url=self.settings.SCRAPE_TARGET_URL,
            connect_timeout_s=self.settings.CONNECT_TIMEOUT_S,
            read_timeout_s=self.settings.READ_TIMEOUT_S,
        )

    # ------------------------------------------------------------------
    # YAML
    # ------------------------------------------------------------------

    def _substitute(self, content: str) -> str:
        """Replace ${NAME} placeholders with settings values."""
        values = self.settings.model_dump()

        def _replace(match: re.Match) -> str:
            key = match.group(1)
            if key not in values or values[key] is None:
                return match.group(0)
            return str(values[key])

        return _PLACEHOLDER.sub(_replace, content)

    def _load_yaml_backends(self, path: Path) -> list[BackendAdapterConfig]:
        if not path.exists():
            raise FileNotFoundError(f"Missing backends config at {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(self._substitute(f.read())) or {}

        entries = data.get("backends") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ValueError(f"{path}: expected a top-level 'backends' list")

        return [self._backend_from_entry(i, entry, path) for i, entry in enumerate(entries)]

    def _backend_from_entry(self, index: int, entry: Any, path: Path) -> BackendAdapterConfig:
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: backends[{index}] must be a mapping")
        source_id = entry.get("source_id")
        endpoint = entry.get("endpoint")
        if not source_id or not endpoint:
            raise ValueError(f"{path}: backends[{index}] needs 'source_id' and 'endpoint'")

        return BackendAdapterConfig(
            source_id=str(source_id),
            endpoint=str(endpoint),
            base_url=str(entry.get("base_url") or self.settings.SCRAPE_TARGET_URL),
            connect_timeout_s=float(entry.get("connect_timeout_s", self.settings.CONNECT_TIMEOUT_S)),
            read_timeout_s=float(entry.get("read_timeout_s", self.settings.READ_TIMEOUT_S)),
            enabled=bool(entry.get("enabled", True)),
            headers={str(k): str(v) for k, v in (entry.get("headers") or {}).items()},
        )
