"""
Scrape Orchestrator.

Runs one scrape cycle: every configured backend gets its own task on a shared
worker pool, and each task fetches, normalizes and persists its own batch as
soon as it is ready (progressive persistence). The caller blocks until every
task has finished, successfully or not.

Per-task state machine:
    PENDING -> FETCHING -> NORMALIZING -> PERSISTING -> DONE | FAILED

A failing backend contributes zero records and never affects its siblings.
Batches already saved are not rolled back, and nothing is retried.
"""

import logging
import threading
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from eventsync.configs.config import Config
from eventsync.configs.settings import Settings
from eventsync.ingestion.adapters import BackendAdapter, BaseSourceAdapter
from eventsync.ingestion.normalization import RecordNormalizer
from eventsync.ingestion.persist import EventStore
from eventsync.monitoring.logging import with_context

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


class TaskState(str, Enum):
    """State of one backend task within a cycle."""

    PENDING = "pending"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class CycleStatus(str, Enum):
    """Status of the orchestrator / of one scrape cycle."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BackendResult:
    """Outcome of one backend task. Owned by that task until it returns."""

    source_id: str
    endpoint: Optional[str] = None
    state: TaskState = TaskState.PENDING
    saved_count: int = 0
    records_normalized: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Calculate task duration."""
        if self.started_at and self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return 0.0

    def fail(self, error: str) -> "BackendResult":
        """Mark the task failed; a failed task contributes no records."""
        self.state = TaskState.FAILED
        self.saved_count = 0
        self.errors.append(error)
        return self


@dataclass
class ScrapeCycleResult:
    """Aggregate outcome of one scrape cycle."""

    cycle_id: str
    status: CycleStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    backends: Dict[str, BackendResult] = field(default_factory=dict)

    @property
    def total_saved(self) -> int:
        """Total records persisted across all backends."""
        return sum(r.saved_count for r in self.backends.values())

    @property
    def duration_seconds(self) -> float:
        """Calculate cycle duration."""
        if self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return 0.0

    def per_backend_counts(self) -> Dict[str, int]:
        """Map source_id -> records saved."""
        return {source_id: r.saved_count for source_id, r in self.backends.items()}

    def summary(self) -> str:
        """Human-readable summary, as returned by the trigger endpoint."""
        breakdown = ", ".join(f"{sid}: {count}" for sid, count in self.per_backend_counts().items())
        return (
            f"Scraping completed! Total events saved: {self.total_saved} ({breakdown}). "
            "Data was saved progressively as each backend completed."
        )

    def as_dict(self) -> Dict[str, Any]:
        """Serializable view of the cycle."""
        return {
            "cycle_id": self.cycle_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "total_saved": self.total_saved,
            "backends": {
                sid: {
                    "state": r.state.value,
                    "saved_count": r.saved_count,
                    "records_normalized": r.records_normalized,
                    "errors": list(r.errors),
                    "duration_seconds": r.duration_seconds,
                }
                for sid, r in self.backends.items()
            },
        }


class ScrapeOrchestrator:
    """
    Coordinates one scrape cycle across all configured backends.

    Responsibilities:
    - Fan out one task per backend on a thread pool
    - Normalize and persist each backend's batch independently
    - Isolate per-backend failures
    - Track cycle status and execution history

    Safe to invoke concurrently (e.g. scheduler and HTTP trigger); each call
    runs its own cycle.
    """

    def __init__(
        self,
        adapters: Sequence[BaseSourceAdapter],
        store: EventStore,
        normalizer: Optional[RecordNormalizer] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            adapters: One adapter per backend; source ids must be unique
            store: Storage collaborator receiving each batch
            normalizer: Record normalizer (default instance if omitted)
            max_workers: Worker pool size (defaults to one per backend)
        """
        source_ids = [a.source_id for a in adapters]
        if len(set(source_ids)) != len(source_ids):
            raise ValueError(f"Duplicate backend source ids: {source_ids}")

        self.adapters = list(adapters)
        self.store = store
        self.normalizer = normalizer or RecordNormalizer()
        self.max_workers = max_workers

        self._lock = threading.Lock()
        self._running_cycles = 0
        self.last_result: Optional[ScrapeCycleResult] = None
        self.execution_history: deque[ScrapeCycleResult] = deque(maxlen=HISTORY_LIMIT)

    # ========================================================================
    # STATUS
    # ========================================================================

    @property
    def status(self) -> CycleStatus:
        """RUNNING while any cycle is in flight, else the last cycle's status."""
        with self._lock:
            if self._running_cycles:
                return CycleStatus.RUNNING
            if self.last_result is None:
                return CycleStatus.IDLE
            return self.last_result.status

    def list_backends(self) -> List[Dict[str, str]]:
        """List configured backends."""
        return [
            {"source_id": a.source_id, "endpoint": getattr(a.config, "endpoint", "")}
            for a in self.adapters
        ]

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def run_cycle(self) -> ScrapeCycleResult:
        """
        Run one scrape cycle and block until every backend task finishes.

        Returns:
            ScrapeCycleResult with total and per-backend counts

        Raises:
            Exception: Only for failures outside the per-backend boundary
                (e.g. the worker pool itself); backend, parse and
                persistence errors are absorbed per task.
        """
        cycle = ScrapeCycleResult(
            cycle_id=uuid.uuid4().hex[:12],
            status=CycleStatus.RUNNING,
            started_at=datetime.now(UTC),
        )
        log = with_context(logger, cycle_id=cycle.cycle_id)
        log.info(f"Starting scrape cycle across {len(self.adapters)} backends")

        with self._lock:
            self._running_cycles += 1
        try:
            if self.adapters:
                workers = self.max_workers or len(self.adapters)
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="scrape"
                ) as pool:
                    futures = {
                        pool.submit(self._run_backend, adapter, cycle.cycle_id): adapter
                        for adapter in self.adapters
                    }
                    for future in as_completed(futures):
                        adapter = futures[future]
                        try:
                            result = future.result()
                        except Exception as e:
                            # _run_backend absorbs its own errors; this only
                            # guards against failures in the executor itself.
                            log.exception(f"Backend task crashed: {adapter.source_id}")
                            result = BackendResult(source_id=adapter.source_id).fail(str(e))
                        cycle.backends[result.source_id] = result
            cycle.status = CycleStatus.COMPLETED
        except Exception:
            cycle.status = CycleStatus.FAILED
            log.exception("Scrape cycle failed")
            raise
        finally:
            cycle.ended_at = datetime.now(UTC)
            # Report in configuration order, not completion order.
            order = {a.source_id: i for i, a in enumerate(self.adapters)}
            cycle.backends = dict(
                sorted(cycle.backends.items(), key=lambda kv: order.get(kv[0], len(order)))
            )
            with self._lock:
                self._running_cycles -= 1
                self.last_result = cycle
                self.execution_history.append(cycle)

        log.info(
            f"Scrape cycle completed: {cycle.total_saved} events saved",
            extra={"payload": {"per_backend": cycle.per_backend_counts()}},
        )
        return cycle

    def _run_backend(self, adapter: BaseSourceAdapter, cycle_id: str) -> BackendResult:
        """Fetch -> normalize -> persist for one backend. Never raises."""
        result = BackendResult(
            source_id=adapter.source_id,
            endpoint=getattr(adapter.config, "endpoint", None),
            started_at=datetime.now(UTC),
        )
        slog = with_context(logger, cycle_id=cycle_id, source_id=adapter.source_id)

        try:
            result.state = TaskState.FETCHING
            fetched = adapter.fetch()
            if not fetched.success:
                slog.warning(f"Backend unavailable, contributing 0 events: {fetched.errors}")
                return result.fail("; ".join(fetched.errors) or "fetch failed")
            if not fetched.body:
                slog.info("Backend returned an empty response")
                result.state = TaskState.DONE
                return result

            result.state = TaskState.NORMALIZING
            events = self.normalizer.normalize_batch(fetched.body, adapter.source_id)
            result.records_normalized = len(events)

            result.state = TaskState.PERSISTING
            if events:
                try:
                    saved = self.store.save_all(events)
                except Exception as e:
                    slog.exception(f"Failed to persist {len(events)} events")
                    return result.fail(f"persistence failed: {e}")
                result.saved_count = len(saved)

            result.state = TaskState.DONE
            slog.info(f"Backend completed and saved {result.saved_count} events")
            return result

        except Exception as e:
            slog.exception("Backend task failed")
            return result.fail(str(e))
        finally:
            result.ended_at = datetime.now(UTC)

    # ========================================================================
    # HISTORY & STATS
    # ========================================================================

    def get_execution_history(self, limit: int = 10) -> List[ScrapeCycleResult]:
        """Return the most recent cycles, oldest first."""
        with self._lock:
            history = list(self.execution_history)
        return history[-limit:]

    def get_execution_stats(self) -> Dict[str, Any]:
        """Get aggregate statistics about recorded cycles."""
        history = self.get_execution_history(limit=HISTORY_LIMIT)
        if not history:
            return {"total_cycles": 0}

        completed = sum(1 for c in history if c.status == CycleStatus.COMPLETED)
        total_saved = sum(c.total_saved for c in history)
        return {
            "total_cycles": len(history),
            "completed_cycles": completed,
            "total_events_saved": total_saved,
            "average_events_per_cycle": total_saved / len(history),
        }

    def close(self) -> None:
        """Close every adapter."""
        for adapter in self.adapters:
            adapter.close()


def build_orchestrator(settings: Settings, store: EventStore) -> ScrapeOrchestrator:
    """
    Create an orchestrator from settings.

    Args:
        settings: Application settings (backend list, timeouts, pool size)
        store: Storage collaborator

    Returns:
        Configured ScrapeOrchestrator with one adapter per enabled backend
    """
    adapters: List[BaseSourceAdapter] = []
    for backend in Config(settings).load_backends():
        if not backend.enabled:
            logger.info(f"Skipping disabled backend: {backend.source_id}")
            continue
        adapters.append(BackendAdapter(backend))
        logger.info(f"Registered backend: {backend.source_id} ({backend.endpoint})")

    return ScrapeOrchestrator(adapters, store, max_workers=settings.MAX_WORKERS)
