"""In-memory cache holding the latest refresh snapshot."""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from processor.models import CacheSnapshot, NormalizedEvent

logger = logging.getLogger(__name__)


def select_events(
    snapshot: CacheSnapshot,
    source_ids: Optional[Iterable[str]] = None
) -> List[NormalizedEvent]:
    """Concatenate a snapshot's events for the requested sources."""
    wanted = set(source_ids) if source_ids is not None else None

    events = []
    for source_id, source_events in snapshot.events.items():
        if wanted is None or source_id in wanted:
            events.extend(source_events)
    return events


class EventCache:
    """
    Single-writer store for the current CacheSnapshot.

    Snapshots are replaced wholesale with a single reference swap. Every
    read method grabs the current reference once so it never mixes data
    from two refresh cycles.
    """

    def __init__(self):
        """Initialize with an empty snapshot and no refresh timestamp."""
        self._snapshot = CacheSnapshot()

    @property
    def snapshot(self) -> CacheSnapshot:
        """Get the currently published snapshot."""
        return self._snapshot

    def replace_snapshot(self, snapshot: CacheSnapshot) -> None:
        """
        Publish a new snapshot, replacing the previous one.

        Args:
            snapshot: Fully populated snapshot from a refresh cycle
        """
        self._snapshot = snapshot
        logger.info(
            f"Published snapshot with {len(snapshot.events)} sources, "
            f"{len(snapshot.raw_payloads)} raw payloads"
        )

    def get_events(
        self,
        source_ids: Optional[Iterable[str]] = None
    ) -> List[NormalizedEvent]:
        """
        Get cached events, optionally restricted to some sources.

        Events are concatenated in source insertion order, then in parse
        order within each source. Unknown ids in the filter are ignored.

        Args:
            source_ids: Source ids to include (default: all cached sources)

        Returns:
            List of NormalizedEvent objects
        """
        return select_events(self._snapshot, source_ids)

    def get_raw_payload(self, source_id: str) -> Optional[str]:
        """Get the raw calendar text cached for a source, if any."""
        return self._snapshot.raw_payloads.get(source_id)

    def get_last_refresh(self) -> Optional[datetime]:
        """Get the time of the last completed refresh, if any."""
        return self._snapshot.last_refresh
