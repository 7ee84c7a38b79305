# threat_monitor/geo_lookup.py
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from rapidfuzz import fuzz, process

from threat_monitor.errors import UpstreamUnavailable
from threat_monitor.gazetteer import GAZETTEER, GazetteerEntry
from threat_monitor.providers import ChatProvider, GeocodingProvider
from threat_monitor.schema import GeoLocation

logger = logging.getLogger(__name__)

# words that pattern matches pick up but are never places (compared lowercased)
LOCATION_BLACKLIST = {
    # generic / political adjectives
    "national", "international", "global", "federal", "state", "regional", "local",
    "central", "western", "eastern", "northern", "southern", "united", "democratic",
    "republic", "people", "supreme", "royal", "imperial",
    # titles and organisations
    "president", "minister", "secretary", "director", "general", "admiral", "colonel",
    "major", "captain", "chief", "head", "leader", "chairman", "ceo",
    "doj", "fbi", "cia", "nsa", "nato", "opec", "asean", "who", "imf",
    # news furniture
    "breaking", "update", "alert", "report", "analysis", "opinion", "editorial",
    "exclusive", "live", "watch", "video", "photo", "image",
    # days and months
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december",
    # religious / cultural
    "church", "mosque", "temple", "synagogue", "cathedral", "chapel",
    # descriptors
    "first", "second", "third", "last", "new", "old", "great", "big", "small",
    "high", "low", "top", "bottom",
    # placeholders
    "unknown", "n/a",
}

_NAME = r"[A-Z][a-zA-Z]+"
_NAME2 = rf"{_NAME}(?:\s+{_NAME})?"

# only the keyword parts are case-insensitive; names must stay capitalised
LOCATION_PATTERNS = [
    # "Minneapolis, Minnesota" / "Paris, France"
    re.compile(rf"\b({_NAME2}),\s+{_NAME2}\b"),
    # in / at / near ... Kyiv
    re.compile(rf"\b(?i:in|at|near|from|across|throughout)\s+({_NAME}(?:\s+{_NAME}){{0,2}})\b"),
    # Donetsk region
    re.compile(rf"\b({_NAME2})\s+(?i:city|region|province|state|county|district|territory|area)\b"),
    # Kabul bombing
    re.compile(rf"\b({_NAME2})\s+(?i:attack|bombing|explosion|protest|riot|uprising|conflict|war|battle|siege)\b"),
    # protest in Tbilisi
    re.compile(
        rf"\b(?i:attack|bombing|explosion|protest|riot|uprising|conflict|clash|clashes|fighting|violence)"
        rf"\s+(?i:in|at|near)\s+({_NAME2})\b"
    ),
    # Sudan military
    re.compile(rf"\b({_NAME2})\s+(?i:government|military|forces|officials|authorities|troops|army|navy|police)\b"),
    # the Niger government
    re.compile(
        rf"\b(?i:the)\s+({_NAME2})\s+(?i:government|president|prime\s+minister|administration|military|army)\b"
    ),
]

LOCATION_PICKER_PROMPT = (
    "You are a location extraction assistant. Given a news headline and optional location candidates, "
    "identify the PRIMARY geographic location (city, country, or region) where the event is happening. "
    "Respond with ONLY the location name, nothing else. "
    'If no clear location can be determined, respond with "UNKNOWN".'
)
UNKNOWN_SENTINEL = "UNKNOWN"

REMOTE_CACHE_SIZE = 512
FUZZY_MIN_LENGTH = 5


def _norm(s: str) -> str:
    s = "" if s is None else str(s)
    s = s.strip().lower()
    s = re.sub(r"\s+", " ", s)
    return s


def _mention_pattern(names: List[str], flags: int = 0) -> Optional[re.Pattern]:
    if not names:
        return None
    # longest first so "South Sudan" wins over "Sudan"
    names = sorted(names, key=len, reverse=True)
    return re.compile(r"(?<![\w-])(" + "|".join(re.escape(n) for n in names) + r")(?![\w-])", flags)


# acronyms (UK, DRC) only match as written; everything else case-insensitively
_ACRONYMS = [e.name for e in GAZETTEER.values() if e.name.isupper()]
_WORDS = [e.name for e in GAZETTEER.values() if not e.name.isupper()]
_MENTION_RX = _mention_pattern(_WORDS, re.IGNORECASE)
_ACRONYM_RX = _mention_pattern(_ACRONYMS)

_FUZZY_KEYS = [k for k in GAZETTEER if len(k) >= FUZZY_MIN_LENGTH]


def _entry_to_location(entry: GazetteerEntry) -> GeoLocation:
    return GeoLocation(
        latitude=entry.lat,
        longitude=entry.lon,
        place_name=entry.name,
        country=entry.country,
    )


def lookup_place_exact(name: str) -> Optional[GeoLocation]:
    """Gazetteer hit by exact, then case-insensitive, name."""
    if not name:
        return None
    key = _norm(name)
    entry = GAZETTEER.get(key)
    if entry is None:
        return None
    return _entry_to_location(entry)


def lookup_place_fuzzy(name: str, cutoff: float = 90.0) -> Optional[GeoLocation]:
    key = _norm(name)
    if len(key) < FUZZY_MIN_LENGTH:
        return None
    match = process.extractOne(key, _FUZZY_KEYS, scorer=fuzz.ratio, score_cutoff=cutoff)
    if not match:
        return None
    choice, _, _ = match
    return _entry_to_location(GAZETTEER[choice])


# candidates
def _trim_candidate(candidate: str) -> str:
    words = candidate.split()
    while words and (words[0].lower() in LOCATION_BLACKLIST or words[0].lower() == "the"):
        words.pop(0)
    while words and words[-1].lower() in LOCATION_BLACKLIST:
        words.pop()
    return " ".join(words)


def _acceptable(candidate: str) -> bool:
    if not candidate or candidate.lower() in LOCATION_BLACKLIST:
        return False
    if len(candidate) < 3:
        return False
    # short all-caps tokens are acronyms, not places
    if len(candidate) <= 4 and candidate == candidate.upper():
        return False
    return True


def extract_location_candidates(text: str) -> List[str]:
    text = re.sub(r"\s+", " ", text or "").strip()
    if not text:
        return []

    cands: List[str] = []

    for pat in LOCATION_PATTERNS:
        for m in pat.finditer(text):
            c = _trim_candidate(m.group(1).strip())
            if _acceptable(c):
                cands.append(c)

    # known place mentions; these skip the acronym filter
    for rx in (_MENTION_RX, _ACRONYM_RX):
        if rx is None:
            continue
        for m in rx.finditer(text):
            cands.append(GAZETTEER[m.group(1).lower()].name)

    out: List[str] = []
    seen = set()
    for c in cands:
        k = c.lower()
        if k not in seen:
            seen.add(k)
            out.append(c)
    return out


class LocationResolver:
    """
    Place name / free text -> GeoLocation.

    geocode() tiers: gazetteer (exact, case-insensitive, fuzzy), then the
    remote geocoder. Never raises; unresolvable names give None.
    """

    def __init__(
        self,
        geocoder: Optional[GeocodingProvider] = None,
        chat: Optional[ChatProvider] = None,
        fuzzy_cutoff: float = 90.0,
        cache_size: int = REMOTE_CACHE_SIZE,
    ):
        self.geocoder = geocoder
        self.chat = chat
        self.fuzzy_cutoff = fuzzy_cutoff
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, Optional[GeoLocation]]" = OrderedDict()

    @property
    def ai_enabled(self) -> bool:
        return self.chat is not None and self.chat.configured

    async def geocode(self, name: str) -> Optional[GeoLocation]:
        name = (name or "").strip()
        if not name:
            return None

        hit = lookup_place_exact(name)
        if hit:
            return hit

        hit = lookup_place_fuzzy(name, self.fuzzy_cutoff)
        if hit:
            return hit

        return await self._remote(name)

    async def _remote(self, name: str) -> Optional[GeoLocation]:
        if self.geocoder is None:
            return None

        key = _norm(name)
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        try:
            features = await self.geocoder.forward(name)
            loc = await self._feature_to_location(name, features[0]) if features else None
        except UpstreamUnavailable as e:
            logger.warning(f"[GEO] remote lookup failed for {name!r}: {e}")
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"[GEO] unusable geocoder feature for {name!r}: {e}")
            return None

        self._cache[key] = loc
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return loc

    async def _feature_to_location(self, name: str, feature: Dict[str, Any]) -> Optional[GeoLocation]:
        lng, lat = float(feature["center"][0]), float(feature["center"][1])

        country: Optional[str] = None
        region: Optional[str] = None
        for c in feature.get("context") or []:
            cid = str(c.get("id") or "")
            if cid.startswith("country") and not country:
                country = c.get("text")
            elif cid.startswith("region") and not region:
                region = c.get("text")

        if not country:
            if "country" in (feature.get("place_type") or []):
                country = feature.get("text")
            else:
                country = await self._reverse_country(lng, lat)

        return GeoLocation(
            latitude=lat,
            longitude=lng,
            place_name=feature.get("text") or name,
            country=country or None,
            region=region,
        )

    async def _reverse_country(self, lng: float, lat: float) -> Optional[str]:
        try:
            return await self.geocoder.reverse_country(lng, lat)
        except UpstreamUnavailable as e:
            logger.warning(f"[GEO] reverse country lookup failed at {lng},{lat}: {e}")
            return None

    async def pick_primary(self, title: str, candidates: List[str]) -> Optional[str]:
        if not self.ai_enabled or not title:
            return None

        cands_text = f"\nPotential locations found: {', '.join(candidates)}" if candidates else ""
        messages = [
            {"role": "system", "content": LOCATION_PICKER_PROMPT},
            {"role": "user", "content": f'Headline: "{title}"{cands_text}\n\nWhat is the primary location?'},
        ]
        try:
            result = await self.chat.complete(messages, max_tokens=50, temperature=0.0)
        except UpstreamUnavailable as e:
            logger.warning(f"[GEO] location picker unavailable: {e}")
            return None

        result = (result or "").strip().strip('"').strip()
        if not result or result.upper() == UNKNOWN_SENTINEL or len(result) < 2:
            return None
        return result

    async def resolve_from_text(
        self, text: str, title: Optional[str] = None, max_locations: int = 3
    ) -> List[GeoLocation]:
        if max_locations <= 0:
            return []

        names = extract_location_candidates(text)

        if title:
            primary = await self.pick_primary(title, names)
            if primary:
                names = [primary] + [n for n in names if n.lower() != primary.lower()]

        out: List[GeoLocation] = []
        seen = set()
        for n in names:
            loc = await self.geocode(n)
            if loc is None:
                continue
            k = loc.place_name.lower()
            if k in seen:
                continue
            seen.add(k)
            out.append(loc)
            if len(out) >= max_locations:
                break
        return out
