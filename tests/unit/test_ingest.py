"""
Unit tests for result filtering, event assembly and the fetch cycle.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config import THREAT_QUERIES
from conftest import FakeSearch, make_event, make_result
from threat_monitor.classifier import EventClassifier
from threat_monitor.errors import AuthRequired, UpstreamUnavailable
from threat_monitor.ingest import (
    EventAssembler,
    clean_content,
    extract_entities,
    extract_keywords,
    fetch_results,
    ingest_all,
    is_blocked_url,
    is_generic_title,
    is_valid_location,
    main,
    normalize_url,
    select_queries,
)
from threat_monitor.schema import GeoLocation, SearchResponse


@pytest.fixture
def assembler(resolver):
    return EventAssembler(EventClassifier.build(resolver), max_concurrent=2)


class _ExplodingClassifier:
    """Delegates to a real classifier but fails for titles containing 'boom'."""

    def __init__(self, inner):
        self.inner = inner

    async def classify(self, title, content):
        if "boom" in title:
            raise RuntimeError("classifier crashed")
        return await self.inner.classify(title, content)


class TestFilters:
    """Tests for the per-result filter helpers."""

    def test_normalize_url(self):
        """Test query strings, fragments, trailing slashes and case are ignored."""
        assert normalize_url("https://A.com/x?ref=1") == normalize_url("https://a.com/x/")
        assert normalize_url("https://a.com/x#top") == "https://a.com/x"
        assert normalize_url(None) == ""

    def test_blocked_hosts(self):
        """Test blocked domains match on host and subdomains only."""
        assert is_blocked_url("https://en.wikipedia.org/wiki/Kyiv")
        assert is_blocked_url("https://www.youtube.com/watch?v=1")
        assert not is_blocked_url("https://notwikipedia.org/story")
        assert not is_blocked_url("https://news.example.com/wikipedia.org")
        assert not is_blocked_url("")

    def test_generic_titles(self):
        """Test landing pages and generic assessments are recognised."""
        assert is_generic_title("Latest News")
        assert is_generic_title("Top headlines")
        assert is_generic_title("World news | Example Daily")
        assert is_generic_title("Ukraine threat assessment 2025")
        assert is_generic_title("Untitled")
        assert not is_generic_title("Missile strike hits Kharkiv apartment block")

    def test_headlines_with_publisher_suffix_kept(self):
        """Test a real headline ending in a news outlet name is not generic."""
        assert not is_generic_title("Earthquake strikes Tokyo - BBC News")
        assert not is_generic_title("Protest in Kyiv turns violent | Sky News")
        assert not is_generic_title("Floods displace thousands in Pakistan - Fox News")
        assert is_generic_title("World news")
        assert is_generic_title("Sky News")

    def test_clean_content(self):
        """Test boilerplate phrases and excess whitespace are removed."""
        raw = "Skip to main content   Shelling\n\n\n\nin Kyiv"

        assert clean_content(raw) == "Shelling in Kyiv"
        assert clean_content(None) == ""

    def test_valid_location(self):
        """Test stoplisted and garbage place names are rejected."""
        def loc(name):
            return GeoLocation(latitude=1.0, longitude=2.0, place_name=name)

        assert is_valid_location(loc("Kyiv"))
        assert is_valid_location(loc("USA"))
        assert not is_valid_location(loc("routes"))
        assert not is_valid_location(loc("usa"))
        assert not is_valid_location(loc("X"))
        assert not is_valid_location(None)


class TestKeywordsAndEntities:
    """Tests for keyword and entity extraction."""

    def test_keywords_are_indicator_hits(self):
        """Test keywords are the matched indicator phrases."""
        assert extract_keywords("Airstrike and shelling near the frontline") == ["airstrike", "shelling", "frontline"]

    def test_keywords_limited(self):
        """Test the keyword list is capped."""
        text = "war airstrike shelling offensive frontline ceasefire clash fighting rebel militia invasion battle"

        assert len(extract_keywords(text)) == 10

    def test_entities(self):
        """Test capitalised names and acronyms are extracted, leading articles trimmed."""
        ents = extract_entities("The White House said NATO would meet. Volodymyr Zelensky met NATO envoys.")

        assert ents[0] == "NATO"
        assert "White House" in ents
        assert "Volodymyr Zelensky" in ents
        assert "The White House" not in ents


class TestAssemble:
    """Tests for EventAssembler.assemble."""

    @pytest.mark.asyncio
    async def test_builds_events(self, assembler):
        """Test a clean result becomes a fully populated event."""
        r = make_result(title="Shelling hits Kyiv suburbs", content="Air raid sirens sounded across Kyiv.")

        events = await assembler.assemble([r])

        assert len(events) == 1
        ev = events[0]
        assert ev.id.startswith("evt_")
        assert ev.category == "conflict"
        assert ev.location.place_name == "Kyiv"
        assert ev.source_url == r.url
        assert ev.source == "news.example.com"
        assert "shelling" in ev.keywords
        assert ev.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_drops_blocked_generic_and_duplicate_urls(self, assembler):
        """Test filtered results never reach classification."""
        keep = make_result(url="https://a.com/story?ref=1")
        results = [
            keep,
            make_result(url="https://a.com/story/"),
            make_result(url="https://en.wikipedia.org/wiki/Kyiv"),
            make_result(title="Latest News"),
        ]

        events = await assembler.assemble(results)

        assert [e.source_url for e in events] == [keep.url]

    @pytest.mark.asyncio
    async def test_results_without_urls_are_not_url_duplicates(self, assembler):
        """Test several url-less results each become an event."""
        results = [
            make_result(url="", title="Earthquake strikes Tokyo", content="Buildings shook in Tokyo."),
            make_result(url="", title="Protest in Kyiv turns violent", content="Crowds gathered in Kyiv."),
        ]

        events = await assembler.assemble(results)

        assert sorted(e.title for e in events) == ["Earthquake strikes Tokyo", "Protest in Kyiv turns violent"]

    @pytest.mark.asyncio
    async def test_drops_unlocatable(self, assembler, geocoder):
        """Test results with no resolvable location are dropped."""
        r = make_result(title="Clashes erupt in Qwertyville", content="Clashes erupted overnight in Qwertyville.")

        assert await assembler.assemble([r]) == []
        assert "Qwertyville" in geocoder.forward_calls

    @pytest.mark.asyncio
    async def test_title_dedupe(self, assembler):
        """Test the first event with a given title wins."""
        first = make_result(title="Shelling in Kyiv", url="https://a.com/1")
        second = make_result(title="Shelling in Kyiv", url="https://b.com/2")

        events = await assembler.assemble([first, second])

        assert [e.source_url for e in events] == ["https://a.com/1"]

    @pytest.mark.asyncio
    async def test_canonical_order(self, assembler):
        """Test output is ordered by severity then recency."""
        results = [
            make_result(title="Minor incident in Odesa", content="", published_date="2025-06-01T10:00:00Z"),
            make_result(title="Explosion rocks Kyiv", content="", published_date="2025-06-01T08:00:00Z"),
            make_result(title="Explosion rocks Kharkiv", content="", published_date="2025-06-01T09:00:00Z"),
        ]

        events = await assembler.assemble(results)

        assert [e.location.place_name for e in events] == ["Kharkiv", "Kyiv", "Odesa"]
        assert [e.threat_level for e in events] == ["high", "high", "low"]

    @pytest.mark.asyncio
    async def test_item_failure_is_isolated(self, resolver):
        """Test one failing item is dropped without affecting the rest."""
        assembler = EventAssembler(_ExplodingClassifier(EventClassifier.build(resolver)))
        results = [make_result(title="boom in Kyiv"), make_result(title="Shelling in Odesa")]

        events = await assembler.assemble(results)

        assert [e.title for e in events] == ["Shelling in Odesa"]

    @pytest.mark.asyncio
    async def test_summary_truncated_and_bad_date_defaults_to_now(self, assembler):
        """Test long content is cut to 500 chars and bad dates fall back to now."""
        before = datetime.now(timezone.utc)
        r = make_result(title="Shelling in Kyiv", content="x" * 800, published_date="not a date")

        ev = (await assembler.assemble([r]))[0]

        assert len(ev.summary) == 500
        assert ev.timestamp >= before

    @pytest.mark.asyncio
    async def test_empty_input(self, assembler):
        """Test no results gives no events."""
        assert await assembler.assemble([]) == []


class TestFetchCycle:
    """Tests for select_queries, fetch_results and ingest_all."""

    def test_select_queries_defaults(self):
        """Test the default query set is used when none are given."""
        assert select_queries(None) == THREAT_QUERIES[:6]
        assert select_queries(["  ", ""], default_count=2) == THREAT_QUERIES[:2]

    def test_select_queries_caps_custom(self):
        """Test custom queries are cleaned and capped."""
        queries = [f"q{i}" for i in range(12)]

        assert select_queries(queries) == queries[:8]
        assert select_queries([" kyiv ", 5, ""]) == ["kyiv"]

    @pytest.mark.asyncio
    async def test_failed_query_contributes_nothing(self):
        """Test one failing query does not sink the cycle."""
        r = make_result()
        search = FakeSearch({"a": SearchResponse(results=[r]), "b": UpstreamUnavailable("502")})

        rows = await fetch_results(search, ["a", "b"])

        assert rows == [r]

    @pytest.mark.asyncio
    async def test_auth_error_propagates(self):
        """Test an auth failure aborts the whole cycle."""
        search = FakeSearch({"a": SearchResponse(results=[make_result()]), "b": AuthRequired("expired")})

        with pytest.raises(AuthRequired):
            await fetch_results(search, ["a", "b"])

    @pytest.mark.asyncio
    async def test_reauth_flag_raises(self):
        """Test a requires_reauth response is surfaced as an auth error."""
        search = FakeSearch({"a": SearchResponse(requires_reauth=True)})

        with pytest.raises(AuthRequired):
            await fetch_results(search, ["a"])

    @pytest.mark.asyncio
    async def test_ingest_all(self, assembler):
        """Test the full cycle passes options through and assembles events."""
        search = FakeSearch(default=SearchResponse(results=[make_result(title="Shelling in Kyiv")]))

        events = await ingest_all(search, assembler, queries=["kyiv"], access_token="tok", max_results=5)

        assert len(events) == 1
        assert search.calls == [{"query": "kyiv", "max_results": 5, "access_token": "tok", "search_type": "news"}]

    @pytest.mark.asyncio
    async def test_queries_run_concurrently_and_merge_in_order(self):
        """Test rows from every query are merged in query order."""
        a, b = make_result(), make_result()
        search = MagicMock()
        search.search = AsyncMock(side_effect=[SearchResponse(results=[a]), SearchResponse(results=[b])])

        rows = await fetch_results(search, ["first", "second"], max_results=3)

        assert rows == [a, b]
        assert search.search.await_count == 2
        search.search.assert_any_await("second", max_results=3, access_token=None)

    def test_main_prints_events(self, capsys):
        """Test the command-line entry point prints one line per event."""
        event = make_event(title="Shelling in Kyiv", threat_level="high")
        with patch("app.build_services", return_value=MagicMock()), patch(
            "threat_monitor.ingest.ingest_all", AsyncMock(return_value=[event])
        ):
            main()

        out = capsys.readouterr().out
        assert "Shelling in Kyiv" in out
        assert "[INGEST] Assembled events: 1" in out

    def test_main_with_no_events(self, capsys):
        """Test the entry point reports an empty cycle."""
        with patch("app.build_services", return_value=MagicMock()), patch(
            "threat_monitor.ingest.ingest_all", AsyncMock(return_value=[])
        ):
            main()

        assert "[INGEST] No events assembled." in capsys.readouterr().out
