# threat_monitor/store.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from threat_monitor.schema import EventCategory, ThreatEvent, ThreatLevel, parse_timestamp
from threat_monitor.scoring import canonical_sort

DEFAULT_CACHE_LIMIT = 1000


class EventFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    time_range: Optional[Tuple[datetime, datetime]] = None
    categories: List[EventCategory] = Field(default_factory=list)
    threat_levels: List[ThreatLevel] = Field(default_factory=list)
    search: str = ""

    @field_validator("time_range", mode="before")
    @classmethod
    def _aware_range(cls, v):
        if v is None:
            return None
        start, end = v
        return parse_timestamp(start), parse_timestamp(end)


def _matches(ev: ThreatEvent, f: EventFilters) -> bool:
    if f.time_range is not None:
        start, end = f.time_range
        if not (start <= ev.timestamp <= end):
            return False

    if f.categories and ev.category not in f.categories:
        return False

    if f.threat_levels and ev.threat_level not in f.threat_levels:
        return False

    q = f.search.strip().lower()
    if q:
        fields = (ev.title, ev.summary, ev.location.place_name, ev.location.country or "")
        if not any(q in (x or "").lower() for x in fields):
            return False

    return True


class EventsStore:
    """
    Bounded in-memory event cache with a filter/sort view.

    Newest insertions sit at the front; once over the limit the oldest
    insertions are dropped. filtered_events() is recomputed on every call.
    """

    def __init__(self, limit: int = DEFAULT_CACHE_LIMIT):
        self.limit = limit
        self._events: List[ThreatEvent] = []
        self.filters = EventFilters()
        self.selected_event_id: Optional[str] = None

    @property
    def events(self) -> List[ThreatEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def set_events(self, events: Iterable[ThreatEvent]) -> None:
        self._events = list(events)[: self.limit]

    def add_events(self, events: Iterable[ThreatEvent]) -> None:
        new = list(events)
        new_ids = {e.id for e in new}
        merged = new + [e for e in self._events if e.id not in new_ids]
        self._events = merged[: self.limit]

    def add_event(self, event: ThreatEvent) -> None:
        self.add_events([event])

    def set_filters(self, **changes) -> EventFilters:
        """Merge the given filter fields into the current filters."""
        self.filters = EventFilters.model_validate({**self.filters.model_dump(), **changes})
        return self.filters

    def clear_filters(self) -> None:
        self.filters = EventFilters()

    def select_event(self, event_id: Optional[str]) -> Optional[ThreatEvent]:
        self.selected_event_id = event_id
        return self.selected_event

    @property
    def selected_event(self) -> Optional[ThreatEvent]:
        if self.selected_event_id is None:
            return None
        for e in self._events:
            if e.id == self.selected_event_id:
                return e
        return None

    def filtered_events(self) -> List[ThreatEvent]:
        f = self.filters
        return canonical_sort(e for e in self._events if _matches(e, f))
