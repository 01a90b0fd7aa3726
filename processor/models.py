"""Data models for calendar aggregation."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Source:
    """One configured remote calendar feed."""
    id: str
    name: str
    url: str
    color: str = "#3788d8"
    enabled: bool = True


@dataclass
class NormalizedEvent:
    """Event extracted from a source feed and normalized to UTC instants."""
    id: str
    title: str
    description: str
    location: str
    start: datetime
    end: Optional[datetime]
    all_day: bool
    source_id: str
    source_name: str
    color: str

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape served by the API."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'location': self.location,
            'start': self.start.isoformat(),
            'end': self.end.isoformat() if self.end else None,
            'allDay': self.all_day,
            'sourceId': self.source_id,
            'sourceName': self.source_name,
            'color': self.color
        }


@dataclass
class FetchResult:
    """Outcome of fetching one source; raw_payload is None on failure."""
    events: List[NormalizedEvent]
    raw_payload: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.raw_payload is not None


@dataclass(frozen=True)
class CacheSnapshot:
    """
    Complete result of one refresh cycle.

    Events and raw payloads are keyed by source id in the order sources
    were processed. A snapshot is never modified once published.
    """
    events: Dict[str, List[NormalizedEvent]] = field(default_factory=dict)
    raw_payloads: Dict[str, str] = field(default_factory=dict)
    last_refresh: Optional[datetime] = None
