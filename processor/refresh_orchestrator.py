"""Refresh cycle across all configured sources."""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from fetcher.ics_fetcher import IcsFetcher
from processor.models import CacheSnapshot, NormalizedEvent, Source
from storage.event_cache import EventCache

logger = logging.getLogger(__name__)


class RefreshOrchestrator:
    """Fetches every enabled source and publishes a fresh snapshot."""

    def __init__(
        self,
        sources: Sequence[Source],
        fetcher: IcsFetcher,
        cache: EventCache
    ):
        """
        Initialize the orchestrator.

        Args:
            sources: Configured sources, in display order
            fetcher: Fetcher used for each source
            cache: Cache receiving the new snapshots
        """
        self.sources = list(sources)
        self.fetcher = fetcher
        self.cache = cache
        self._lock = threading.Lock()

    def refresh_all(self) -> CacheSnapshot:
        """
        Run one full refresh cycle.

        Cycles are serialized: a call made while another cycle is running
        waits for it to finish and then runs its own cycle.

        Returns:
            The snapshot that was published
        """
        with self._lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> CacheSnapshot:
        logger.info("Refreshing all sources")
        start_time = time.time()

        events: Dict[str, List[NormalizedEvent]] = {}
        raw_payloads: Dict[str, str] = {}
        failed = 0

        for source in self.sources:
            if not source.enabled:
                logger.debug(f"Skipping disabled source {source.name}")
                continue

            result = self.fetcher.fetch_source(source)
            events[source.id] = result.events
            if result.succeeded:
                raw_payloads[source.id] = result.raw_payload
            else:
                failed += 1

        snapshot = CacheSnapshot(
            events=events,
            raw_payloads=raw_payloads,
            last_refresh=datetime.now(timezone.utc)
        )
        self.cache.replace_snapshot(snapshot)

        duration = time.time() - start_time
        logger.info(
            f"Refresh complete at {snapshot.last_refresh.isoformat()}",
            extra={
                'duration_seconds': round(duration, 2),
                'sources_fetched': len(events),
                'sources_failed': failed,
                'events_total': sum(len(v) for v in events.values())
            }
        )
        return snapshot


class RefreshScheduler:
    """Background thread calling refresh_all at a fixed interval."""

    def __init__(self, orchestrator: RefreshOrchestrator, interval_minutes: float = 15):
        """
        Initialize the scheduler.

        Args:
            orchestrator: Orchestrator to drive
            interval_minutes: Minutes between refresh cycles (default: 15)
        """
        self.orchestrator = orchestrator
        self.interval_seconds = interval_minutes * 60
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread; the first tick comes after one interval."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="refresh-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(f"Auto-refresh every {self.interval_seconds / 60:g} minutes")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.orchestrator.refresh_all()
            except Exception as e:
                logger.error(
                    f"Scheduled refresh failed: {e}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
