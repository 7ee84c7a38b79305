"""
Pytest configuration, in-memory provider fakes and factories.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import itertools

import pytest

from threat_monitor.errors import UpstreamUnavailable
from threat_monitor.geo_lookup import LocationResolver
from threat_monitor.schema import GeoLocation, SearchResponse, SearchResult, ThreatEvent


# ============================================================
# Provider fakes
# ============================================================

class FakeGeocoder:
    """Mapbox-shaped geocoder keyed by exact place name."""

    def __init__(self, features: Optional[Dict[str, List[dict]]] = None, countries=None, fail: bool = False):
        self.features = features or {}
        self.countries = countries or {}
        self.fail = fail
        self.forward_calls: List[str] = []
        self.reverse_calls: List[tuple] = []

    @property
    def calls(self) -> int:
        return len(self.forward_calls) + len(self.reverse_calls)

    async def forward(self, place_name: str) -> List[dict]:
        self.forward_calls.append(place_name)
        if self.fail:
            raise UpstreamUnavailable("geocoder down")
        return list(self.features.get(place_name, []))

    async def reverse_country(self, lng: float, lat: float) -> Optional[str]:
        self.reverse_calls.append((lng, lat))
        if self.fail:
            raise UpstreamUnavailable("geocoder down")
        return self.countries.get((lng, lat))


class FakeChat:
    """Chat provider returning scripted replies in order."""

    def __init__(self, replies=None, configured: bool = True, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self._configured = configured
        self.error = error
        self.calls: List[dict] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def complete(self, messages, max_tokens=200, temperature=0.0, response_format=None) -> str:
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature, "response_format": response_format}
        )
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


class FakeSearch:
    """Search provider; responses keyed by query, an Exception value is raised."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, default: Optional[SearchResponse] = None):
        self.responses = responses or {}
        self.default = default or SearchResponse()
        self.calls: List[dict] = []

    async def search(self, query, max_results=20, freshness=None, access_token=None, search_type="news"):
        self.calls.append(
            {"query": query, "max_results": max_results, "access_token": access_token, "search_type": search_type}
        )
        resp = self.responses.get(query, self.default)
        if isinstance(resp, Exception):
            raise resp
        return resp


class FakeAnswers:
    """
    Answer provider. Each answer()/answer_stream() call consumes the next
    scripted entry: a dict for answer(), a list of messages for answer_stream().
    An Exception entry (or an Exception inside a message list) is raised.
    """

    def __init__(self, script=None, streaming: bool = True):
        self.script = list(script or [])
        self.streaming = streaming
        self.queries: List[str] = []
        self.tokens: List[Optional[str]] = []
        self.closed = False

    @property
    def supports_streaming(self) -> bool:
        return self.streaming

    def _next(self):
        if not self.script:
            return {}
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def answer(self, query, excluded_sources=(), access_token=None) -> dict:
        self.queries.append(query)
        self.tokens.append(access_token)
        return self._next()

    async def answer_stream(self, query, excluded_sources=()):
        self.queries.append(query)
        self.tokens.append(None)
        messages = self._next()
        try:
            for m in messages:
                if isinstance(m, Exception):
                    raise m
                yield m
        finally:
            self.closed = True


class FakeDeepResearch:
    """Deep-research provider replaying status payloads; the last one repeats."""

    def __init__(self, statuses=None, task_id: str = "task_123"):
        self.statuses = list(statuses or [{"status": "queued"}])
        self.task_id = task_id
        self.created: List[dict] = []
        self.status_calls = 0
        self.status_tokens: List[Optional[str]] = []

    async def create_task(self, query, mode, output_formats, deliverables, access_token=None) -> str:
        self.created.append(
            {
                "query": query,
                "mode": mode,
                "output_formats": list(output_formats),
                "deliverables": list(deliverables),
                "access_token": access_token,
            }
        )
        return self.task_id

    async def task_status(self, task_id, access_token=None) -> dict:
        self.status_calls += 1
        self.status_tokens.append(access_token)
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item


# ============================================================
# Factories
# ============================================================

_ids = itertools.count(1)

BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_event(**overrides) -> ThreatEvent:
    n = next(_ids)
    data = {
        "id": f"evt_{n}",
        "title": f"Event {n}",
        "summary": "Shelling reported overnight",
        "category": "conflict",
        "threat_level": "medium",
        "location": GeoLocation(latitude=50.45, longitude=30.52, place_name="Kyiv", country="Ukraine"),
        "timestamp": BASE_TIME + timedelta(minutes=n),
        "source_url": f"https://news.example.com/{n}",
    }
    data.update(overrides)
    return ThreatEvent(**data)


def make_result(**overrides) -> SearchResult:
    n = next(_ids)
    data = {
        "title": f"Fighting continues in Kyiv {n}",
        "url": f"https://news.example.com/story-{n}",
        "content": "Air raid sirens sounded across Kyiv as shelling continued.",
        "published_date": (BASE_TIME + timedelta(minutes=n)).isoformat(),
        "source": "news.example.com",
    }
    data.update(overrides)
    return SearchResult(**data)


def mapbox_feature(text, lng, lat, place_type="place", context=None) -> dict:
    return {
        "text": text,
        "center": [lng, lat],
        "place_type": [place_type],
        "context": context or [],
    }


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def resolver(geocoder):
    return LocationResolver(geocoder=geocoder)
