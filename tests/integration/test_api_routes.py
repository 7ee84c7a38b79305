"""
Integration tests for the HTTP surface, wired to in-memory providers.
"""

import json

import pytest
from fastapi.testclient import TestClient

from app import Services, create_app
from config import Settings
from conftest import FakeAnswers, FakeDeepResearch, FakeGeocoder, FakeSearch, make_result
from threat_monitor.entities import PROFILE_QUERY
from threat_monitor.schema import SearchResponse

COMPLETED = {
    "status": "completed",
    "output": "Findings.",
    "deliverables": [{"type": "csv", "title": "Data", "url": "https://files.example/d.csv", "status": "completed"}],
}


def _client(app_mode="self-hosted", search=None, answers=None, deep_research=None):
    settings = Settings(app_mode=app_mode, deepresearch_poll_seconds=0, deepresearch_max_attempts=3)
    services = Services.from_providers(
        settings,
        search or FakeSearch(default=SearchResponse(results=[make_result(title="Shelling in Kyiv")])),
        answers or FakeAnswers(),
        deep_research or FakeDeepResearch([COMPLETED]),
        geocoder=FakeGeocoder(),
    )
    return TestClient(create_app(settings=settings, services=services)), services


def _sse_payloads(body: str):
    return [json.loads(block[len("data: "):]) for block in body.split("\n\n") if block.startswith("data: ")]


class TestEvents:
    """Tests for the events routes."""

    def test_post_events(self):
        """Test a fetch cycle returns wire events and fills the store."""
        client, services = _client()

        resp = client.post("/events", json={"queries": ["kyiv shelling"]})

        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 1
        event = data["events"][0]
        assert event["threatLevel"] in ("critical", "high", "medium", "low", "info")
        assert event["location"]["placeName"] == "Kyiv"
        assert "sourceUrl" in event
        assert len(services.store) == 1

    def test_get_events_with_query(self):
        """Test the GET form runs a single custom query."""
        search = FakeSearch()
        client, _ = _client(search=search)

        resp = client.get("/events", params={"q": "sudan"})

        assert resp.status_code == 200
        assert resp.json()["events"] == []
        assert [c["query"] for c in search.calls] == ["sudan"]

    def test_user_token_required_in_valyu_mode(self):
        """Test a missing user token is rejected before any search."""
        search = FakeSearch()
        client, _ = _client(app_mode="valyu", search=search)

        resp = client.post("/events", json={})

        assert resp.status_code == 401
        assert resp.json() == {"error": "auth_error", "message": "Authentication required", "requiresReauth": True}
        assert search.calls == []

    def test_self_hosted_ignores_user_token(self):
        """Test a browser token is not forwarded when the server key is used."""
        search = FakeSearch()
        client, _ = _client(search=search)

        resp = client.post("/events", json={"queries": ["kyiv"], "accessToken": "browser"})

        assert resp.status_code == 200
        assert [c["access_token"] for c in search.calls] == [None]

    def test_valyu_mode_forwards_user_token(self):
        """Test the user token reaches the search provider in valyu mode."""
        search = FakeSearch()
        client, _ = _client(app_mode="valyu", search=search)

        client.post("/events", json={"queries": ["kyiv"], "accessToken": "tok"})

        assert [c["access_token"] for c in search.calls] == ["tok"]

    def test_expired_token(self):
        """Test a provider reauth signal becomes a 401."""
        client, _ = _client(app_mode="valyu", search=FakeSearch(default=SearchResponse(requires_reauth=True)))

        resp = client.post("/events", json={"accessToken": "stale"})

        assert resp.status_code == 401
        assert resp.json()["requiresReauth"] is True


class TestCountryConflicts:
    """Tests for GET /countries/conflicts."""

    def test_missing_country(self):
        """Test the country parameter is required."""
        client, _ = _client()

        resp = client.get("/countries/conflicts")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Country parameter is required"}

    def test_non_streamed(self):
        """Test past and current sections are returned together."""
        answers = FakeAnswers([{"contents": "Old wars."}, {"contents": "Current tensions."}])
        client, _ = _client(answers=answers)

        resp = client.get("/countries/conflicts", params={"country": "Georgia"})

        data = resp.json()
        assert data["country"] == "Georgia"
        assert data["past"]["conflicts"] == "Old wars."
        assert data["current"]["conflicts"] == "Current tensions."
        assert "timestamp" in data

    def test_streamed(self):
        """Test the SSE body is a sequence of data frames ending in done."""
        answers = FakeAnswers(
            [
                [{"type": "content", "content": "Now."}],
                [{"type": "content", "content": "Then."}, {"type": "search_results", "search_results": []}],
            ]
        )
        client, _ = _client(answers=answers)

        resp = client.get("/countries/conflicts", params={"country": "Georgia", "stream": "true"})

        assert resp.headers["content-type"].startswith("text/event-stream")
        assert _sse_payloads(resp.text) == [
            {"type": "current_content", "content": "Now."},
            {"type": "past_content", "content": "Then."},
            {"type": "past_sources", "sources": []},
            {"type": "done"},
        ]

    def test_streamed_error_frame(self):
        """Test an upstream failure arrives as a single error frame."""
        answers = FakeAnswers([[RuntimeError("upstream closed")]])
        client, _ = _client(answers=answers)

        resp = client.get("/countries/conflicts", params={"country": "Georgia", "stream": "true"})

        assert _sse_payloads(resp.text) == [{"type": "error", "error": "upstream closed"}]


class TestDeepResearch:
    """Tests for the deep research and report routes."""

    def test_create_and_poll(self):
        """Test a task is created queued and polled as a snapshot."""
        client, _ = _client()

        created = client.post("/deepresearch", json={"topic": "Sahel"})
        polled = client.get(f"/deepresearch/{created.json()['taskId']}")

        assert created.json() == {"taskId": "task_123", "status": "queued"}
        assert polled.json()["taskId"] == "task_123"
        assert polled.json()["status"] == "completed"
        assert polled.json()["deliverables"][0]["type"] == "csv"

    def test_self_hosted_ignores_user_token(self):
        """Test task creation and polling never forward a token in self-hosted mode."""
        provider = FakeDeepResearch([COMPLETED])
        client, _ = _client(deep_research=provider)

        client.post("/deepresearch", json={"topic": "Sahel", "accessToken": "browser"})
        client.get("/deepresearch/task_123", params={"accessToken": "browser"})

        assert provider.created[0]["access_token"] is None
        assert provider.status_tokens == [None]

    def test_empty_topic(self):
        """Test a blank topic is a 400."""
        client, _ = _client()

        assert client.post("/deepresearch", json={"topic": " "}).status_code == 400

    def test_upstream_failure_is_502(self):
        """Test a provider-reported failure maps to 502."""
        client, _ = _client(deep_research=FakeDeepResearch([{"success": False, "error": "not found"}]))

        resp = client.get("/deepresearch/task_404")

        assert resp.status_code == 502
        assert resp.json() == {"error": "not found"}

    def test_report(self):
        """Test a report blocks until the dossier completes."""
        client, _ = _client()

        resp = client.post("/reports", json={"topic": "Sahel", "type": "security"})

        report = resp.json()["report"]
        assert report["summary"] == "Findings."
        assert report["type"] == "security"
        assert report["deliverables"][0]["url"] == "https://files.example/d.csv"


class TestEntities:
    """Tests for the entity routes."""

    def test_profile(self):
        """Test a found entity is returned as a wire profile."""
        search = FakeSearch(
            {
                PROFILE_QUERY.format(name="Hezbollah"): SearchResponse(
                    results=[make_result(content="Hezbollah is a militant group based in Lebanon.")]
                )
            }
        )
        client, _ = _client(search=search)

        resp = client.post("/entities", json={"name": "Hezbollah"})

        entity = resp.json()["entity"]
        assert entity["type"] == "group"
        assert entity["locations"][0]["placeName"] == "Lebanon"

    def test_not_found(self):
        """Test an unknown entity is a 404."""
        client, _ = _client(search=FakeSearch())

        resp = client.post("/entities", json={"name": "Nobody Known"})

        assert resp.status_code == 404
        assert resp.json() == {"error": "Entity not found"}

    @pytest.mark.parametrize("path", ["/entities/stream", "/entities/stream?name=%20"])
    def test_stream_requires_name(self, path):
        """Test the entity stream needs a name."""
        client, _ = _client()

        assert client.get(path).status_code == 400

    def test_stream(self):
        """Test the entity overview streams content then done."""
        answers = FakeAnswers([[{"type": "content", "content": "Overview."}]])
        client, _ = _client(answers=answers)

        resp = client.get("/entities/stream", params={"name": "Hezbollah"})

        assert _sse_payloads(resp.text) == [{"type": "content", "content": "Overview."}, {"type": "done"}]
