from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional, get_args

from dateutil import parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EventCategory = Literal[
    "conflict",
    "protest",
    "disaster",
    "diplomatic",
    "economic",
    "terrorism",
    "cyber",
    "health",
    "environmental",
    "military",
    "crime",
    "piracy",
    "infrastructure",
    "commodities",
]
ThreatLevel = Literal["critical", "high", "medium", "low", "info"]
TaskStatus = Literal["queued", "running", "completed", "failed"]
EntityType = Literal["country", "group", "person", "organization"]

CATEGORIES = get_args(EventCategory)
THREAT_LEVELS = get_args(ThreatLevel)

# never acceptable as a GeoLocation.place_name
PLACEHOLDER_NAMES = {
    "unknown", "global", "worldwide", "n/a", "none", "null",
    "various", "multiple", "international",
}


def parse_timestamp(value) -> datetime:
    if isinstance(value, str):
        value = parser.parse(value)
    if not isinstance(value, datetime):
        raise ValueError(f"not a timestamp: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class _Model(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeoLocation(_Model):
    latitude: float
    longitude: float
    place_name: str
    country: Optional[str] = None
    region: Optional[str] = None

    @field_validator("place_name")
    @classmethod
    def _real_place(cls, v: str) -> str:
        v = (v or "").strip()
        if not v or v.lower() in PLACEHOLDER_NAMES:
            raise ValueError(f"placeholder place name: {v!r}")
        return v


class Source(_Model):
    title: str = "Source"
    url: str = ""


class ThreatEvent(_Model):
    id: str
    title: str
    summary: str = Field(default="", max_length=500)
    category: EventCategory
    threat_level: ThreatLevel
    location: GeoLocation
    timestamp: datetime
    source: str = "web"
    source_url: str = ""
    entities: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    raw_content: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def _aware_timestamp(cls, v):
        return parse_timestamp(v)


class SearchResult(_Model):
    title: str = "Untitled"
    url: str = ""
    content: str = ""
    published_date: Optional[str] = None
    source: Optional[str] = None


class SearchResponse(_Model):
    results: List[SearchResult] = Field(default_factory=list)
    requires_reauth: bool = False


class ConflictStreamChunk(_Model):
    type: Literal["current_content", "current_sources", "past_content", "past_sources", "done", "error"]
    content: Optional[str] = None
    sources: Optional[List[Source]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")


class EntityStreamChunk(_Model):
    type: Literal["content", "sources", "done", "error"]
    content: Optional[str] = None
    sources: Optional[List[Source]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")


class TaskProgress(_Model):
    current_step: int
    total_steps: int


class Deliverable(_Model):
    type: str
    title: str = ""
    url: Optional[str] = None
    status: str = "pending"

    @property
    def available(self) -> bool:
        return self.status == "completed" and bool(self.url)


class DeepResearchTask(_Model):
    task_id: str
    status: TaskStatus
    progress: Optional[TaskProgress] = None
    output: Optional[str] = None
    sources: Optional[List[Source]] = None
    deliverables: Optional[List[Deliverable]] = None
    pdf_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")

    @property
    def available_deliverables(self) -> List[Deliverable]:
        return [d for d in (self.deliverables or []) if d.available]


class EntityProfile(_Model):
    id: str
    name: str
    type: EntityType
    description: str = ""
    locations: List[GeoLocation] = Field(default_factory=list)
    sources: List[Source] = Field(default_factory=list)
    research_summary: Optional[str] = None


def to_sources(raw) -> List[Source]:
    """Provider search_results / sources -> Source list with placeholders filled."""
    out: List[Source] = []
    for s in raw or []:
        if not isinstance(s, dict):
            continue
        out.append(Source(title=s.get("title") or "Source", url=s.get("url") or ""))
    return out
