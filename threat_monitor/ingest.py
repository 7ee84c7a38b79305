# threat_monitor/ingest.py
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from config import BLOCKED_DOMAINS, GENERIC_TITLE_PATTERNS, THREAT_QUERIES
from threat_monitor.classifier import EventClassifier
from threat_monitor.errors import AuthRequired
from threat_monitor.providers import SearchProvider
from threat_monitor.schema import GeoLocation, SearchResult, ThreatEvent, parse_timestamp
from threat_monitor.scoring import canonical_sort, indicator_hits

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 500
MAX_KEYWORDS = 10
MAX_ENTITIES = 10

# location names that classify "successfully" but are useless on a map
LOCATION_STOPLIST = {"unknown", "global", "worldwide", "n/a", "routes"}

_GENERIC_TITLE_RX = [re.compile(p, re.IGNORECASE) for p in GENERIC_TITLE_PATTERNS]

_BOILERPLATE_RX = [
    re.compile(r"skip to (?:main |primary )?content", re.IGNORECASE),
    re.compile(r"keyboard shortcuts?", re.IGNORECASE),
]

_ENTITY_RX = re.compile(r"\b(?:[A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,3}|[A-Z]{2,6})\b")
_ENTITY_STOP = {"The", "This", "That", "These", "Those", "In", "On", "At", "A", "An", "But", "And", "Breaking"}


def _safe_str(x) -> str:
    return "" if x is None else str(x)


def clean_content(text: str) -> str:
    text = _safe_str(text)
    for rx in _BOILERPLATE_RX:
        text = rx.sub(" ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def normalize_url(url: str) -> str:
    """Dedupe key: no query string, fragment or trailing slash; lowercased."""
    u = _safe_str(url).strip()
    u = u.split("#", 1)[0].split("?", 1)[0]
    u = u.rstrip("/")
    return u.lower()


def _host(url: str) -> str:
    try:
        return (urlsplit(_safe_str(url).strip()).hostname or "").lower()
    except ValueError:
        return ""


def is_blocked_url(url: str, blocked: Iterable[str] = BLOCKED_DOMAINS) -> bool:
    host = _host(url)
    if not host:
        return False
    return any(host == d or host.endswith("." + d) for d in blocked)


def is_generic_title(title: str) -> bool:
    t = _safe_str(title).strip()
    return any(rx.search(t) for rx in _GENERIC_TITLE_RX)


def is_valid_location(loc: Optional[GeoLocation]) -> bool:
    if loc is None:
        return False
    name = (loc.place_name or "").strip()
    if len(name) < 2:
        return False
    if name.lower() in LOCATION_STOPLIST:
        return False
    # short lowercase-only tokens are extraction garbage
    if re.fullmatch(r"[a-z]{1,4}", name):
        return False
    return True


# keywords + entities
def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    _, hits = indicator_hits(text)
    return hits[:limit]


def extract_entities(text: str, limit: int = MAX_ENTITIES) -> List[str]:
    counts: Counter = Counter()
    for m in _ENTITY_RX.finditer(_safe_str(text)):
        words = m.group(0).split()
        while words and words[0] in _ENTITY_STOP:
            words.pop(0)
        if not words:
            continue
        ent = " ".join(words)
        if len(ent) >= 2:
            counts[ent] += 1
    # most_common keeps first-seen order for equal counts
    return [e for e, _ in counts.most_common(limit)]


def _event_time(published: Optional[str]) -> datetime:
    if published:
        try:
            return parse_timestamp(published)
        except (ValueError, OverflowError):
            logger.debug(f"[INGEST] unparseable publish date {published!r}")
    return datetime.now(timezone.utc)


class EventAssembler:
    """Raw search results -> deduplicated, geolocated, ordered ThreatEvents."""

    def __init__(self, classifier: EventClassifier, max_concurrent: int = 8):
        self.classifier = classifier
        self.max_concurrent = max(1, max_concurrent)

    async def _build_event(self, r: SearchResult) -> Optional[ThreatEvent]:
        title = clean_content(r.title)
        content = clean_content(r.content)

        verdict = await self.classifier.classify(title, content)
        if not is_valid_location(verdict.location):
            return None

        full_text = f"{title} {content}"
        return ThreatEvent(
            id=f"evt_{uuid.uuid4().hex}",
            title=title,
            summary=content[:SUMMARY_CHARS],
            category=verdict.category,
            threat_level=verdict.threat_level,
            location=verdict.location,
            timestamp=_event_time(r.published_date),
            source=r.source or "web",
            source_url=r.url,
            entities=extract_entities(full_text),
            keywords=extract_keywords(full_text),
            raw_content=content,
        )

    async def assemble(self, raw_results: Sequence[SearchResult]) -> List[ThreatEvent]:
        stats: Counter = Counter()

        # filter + url dedupe
        candidates: List[SearchResult] = []
        seen_urls = set()
        for r in raw_results:
            if is_blocked_url(r.url):
                stats["dropped_blocked"] += 1
                continue
            if is_generic_title(r.title):
                stats["dropped_generic"] += 1
                continue
            key = normalize_url(r.url)
            if key:
                if key in seen_urls:
                    stats["dropped_dupe_url"] += 1
                    continue
                seen_urls.add(key)
            candidates.append(r)

        sem = asyncio.Semaphore(self.max_concurrent)

        async def _one(r: SearchResult) -> Optional[ThreatEvent]:
            async with sem:
                try:
                    return await self._build_event(r)
                except Exception as e:
                    stats["dropped_error"] += 1
                    logger.warning(f"[INGEST] item failed ({r.url or r.title!r}): {e}")
                    return None

        built = await asyncio.gather(*(_one(r) for r in candidates))

        # title dedupe
        events: List[ThreatEvent] = []
        seen_titles = set()
        for ev in built:
            if ev is None:
                continue
            if ev.title in seen_titles:
                stats["dropped_dupe_title"] += 1
                continue
            seen_titles.add(ev.title)
            events.append(ev)

        stats["dropped_no_geo"] = len(candidates) - stats["dropped_error"] - len(events) - stats["dropped_dupe_title"]
        events = canonical_sort(events)

        logger.info(
            f"[INGEST] fetched={len(raw_results)} kept={len(events)} "
            f"dropped_blocked={stats['dropped_blocked']} dropped_generic={stats['dropped_generic']} "
            f"dropped_dupe_url={stats['dropped_dupe_url']} dropped_no_geo={stats['dropped_no_geo']} "
            f"dropped_dupe_title={stats['dropped_dupe_title']} dropped_error={stats['dropped_error']}"
        )
        return events


# fetch cycle
def select_queries(queries: Optional[Sequence[str]], max_queries: int = 8, default_count: int = 6) -> List[str]:
    cleaned = [q.strip() for q in (queries or []) if isinstance(q, str) and q.strip()]
    if cleaned:
        return cleaned[:max_queries]
    return list(THREAT_QUERIES[:default_count])


async def fetch_results(
    search: SearchProvider,
    queries: Sequence[str],
    max_results: int = 15,
    access_token: Optional[str] = None,
) -> List[SearchResult]:
    """Run all queries concurrently; a failed query contributes nothing."""
    responses = await asyncio.gather(
        *(search.search(q, max_results=max_results, access_token=access_token) for q in queries),
        return_exceptions=True,
    )

    rows: List[SearchResult] = []
    for q, resp in zip(queries, responses):
        if isinstance(resp, AuthRequired):
            raise resp
        if isinstance(resp, BaseException):
            if not isinstance(resp, Exception):
                raise resp
            logger.warning(f"[INGEST] query failed {q!r}: {resp}")
            continue
        if resp.requires_reauth:
            raise AuthRequired("Session expired. Please sign in again.")
        rows.extend(resp.results)
    return rows


async def ingest_all(
    search: SearchProvider,
    assembler: EventAssembler,
    queries: Optional[Sequence[str]] = None,
    access_token: Optional[str] = None,
    max_results: int = 15,
    max_queries: int = 8,
    default_count: int = 6,
) -> List[ThreatEvent]:
    qs = select_queries(queries, max_queries=max_queries, default_count=default_count)
    rows = await fetch_results(search, qs, max_results=max_results, access_token=access_token)
    logger.info(f"[INGEST] queries={len(qs)} results={len(rows)}")
    return await assembler.assemble(rows)


def main():
    from app import build_services
    from config import Settings

    settings = Settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    services = build_services(settings)

    events = asyncio.run(
        ingest_all(
            services.search,
            services.assembler,
            max_results=settings.search_max_results,
            max_queries=settings.max_queries,
            default_count=settings.default_query_count,
        )
    )
    if not events:
        print("[INGEST] No events assembled.")
        return
    for ev in events:
        print(f"{ev.threat_level:<8} {ev.category:<14} {ev.location.place_name:<20} {ev.title}")
    print(f"[INGEST] Assembled events: {len(events)}")


if __name__ == "__main__":
    main()
