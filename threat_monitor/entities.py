# threat_monitor/entities.py
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import List, Optional

from threat_monitor.dossier import DossierTaskClient
from threat_monitor.errors import AuthRequired, InputRejected, UpstreamUnavailable
from threat_monitor.geo_lookup import LocationResolver
from threat_monitor.providers import SearchProvider
from threat_monitor.schema import EntityProfile, EntityType, GeoLocation, SearchResult, Source

logger = logging.getLogger(__name__)

DESCRIPTION_CHARS = 1000

PROFILE_QUERY = "{name} profile background information"
LOCATIONS_QUERY = "{name} headquarters offices locations branches worldwide operations"

COUNTRIES = {
    "afghanistan", "albania", "algeria", "andorra", "angola", "argentina", "armenia",
    "australia", "austria", "azerbaijan", "bahamas", "bahrain", "bangladesh", "barbados",
    "belarus", "belgium", "belize", "benin", "bhutan", "bolivia", "bosnia", "botswana",
    "brazil", "brunei", "bulgaria", "burkina faso", "burundi", "cambodia", "cameroon",
    "canada", "cape verde", "central african republic", "chad", "chile", "china",
    "colombia", "comoros", "congo", "costa rica", "croatia", "cuba", "cyprus",
    "czech republic", "czechia", "denmark", "djibouti", "dominica", "dominican republic",
    "ecuador", "egypt", "el salvador", "equatorial guinea", "eritrea", "estonia",
    "eswatini", "ethiopia", "fiji", "finland", "france", "gabon", "gambia", "georgia",
    "germany", "ghana", "greece", "grenada", "guatemala", "guinea", "guinea-bissau",
    "guyana", "haiti", "honduras", "hungary", "iceland", "india", "indonesia", "iran",
    "iraq", "ireland", "israel", "italy", "ivory coast", "jamaica", "japan", "jordan",
    "kazakhstan", "kenya", "kiribati", "north korea", "south korea", "korea", "kosovo",
    "kuwait", "kyrgyzstan", "laos", "latvia", "lebanon", "lesotho", "liberia", "libya",
    "liechtenstein", "lithuania", "luxembourg", "madagascar", "malawi", "malaysia",
    "maldives", "mali", "malta", "marshall islands", "mauritania", "mauritius", "mexico",
    "micronesia", "moldova", "monaco", "mongolia", "montenegro", "morocco", "mozambique",
    "myanmar", "namibia", "nauru", "nepal", "netherlands", "new zealand", "nicaragua",
    "niger", "nigeria", "north macedonia", "norway", "oman", "pakistan", "palau",
    "palestine", "panama", "papua new guinea", "paraguay", "peru", "philippines", "poland",
    "portugal", "qatar", "romania", "russia", "rwanda", "saint kitts", "saint lucia",
    "saint vincent", "samoa", "san marino", "saudi arabia", "senegal", "serbia",
    "seychelles", "sierra leone", "singapore", "slovakia", "slovenia", "solomon islands",
    "somalia", "south africa", "south sudan", "spain", "sri lanka", "sudan", "suriname",
    "sweden", "switzerland", "syria", "taiwan", "tajikistan", "tanzania", "thailand",
    "timor-leste", "togo", "tonga", "trinidad", "tunisia", "turkey", "turkmenistan",
    "tuvalu", "uganda", "ukraine", "united arab emirates", "uae", "united kingdom", "uk",
    "united states", "usa", "us", "america", "uruguay", "uzbekistan", "vanuatu",
    "vatican", "venezuela", "vietnam", "yemen", "zambia", "zimbabwe",
}

COUNTRY_INDICATORS = [
    "sovereign nation", "republic of", "kingdom of", "nation state",
    "government of", "country located", "bordered by", "capital city",
    "national anthem", "head of state", "prime minister of", "president of the country",
]
GROUP_INDICATORS = [
    "ethnic group", "tribe", "tribal", "indigenous", "clan", "community",
    "peoples", "militant group", "rebel group", "armed group", "terrorist organization",
    "militia", "faction", "insurgent", "separatist", "guerrilla",
]
PERSON_INDICATORS = [
    "was born", "born in", "died in", "biography", "personal life",
    "early life", "career", "married", "children", "his ", "her ",
    "he was", "she was", "politician", "leader", "ceo", "founder",
    "president ", "minister ", "general ", "commander",
]
ORG_INDICATORS = [
    "company", "corporation", "founded in", "headquarters", "inc.", "ltd.",
    "organization", "institution", "agency", "association", "foundation",
    "ngo", "nonprofit", "enterprise", "business", "firm", "conglomerate",
]

# (type, indicators, weight); earlier rows win ties
_TYPE_RULES = [
    ("country", COUNTRY_INDICATORS, 2.0),
    ("group", GROUP_INDICATORS, 1.5),
    ("person", PERSON_INDICATORS, 1.0),
    ("organization", ORG_INDICATORS, 1.0),
]


def classify_entity_type(name: str, content: str) -> EntityType:
    if (name or "").strip().lower() in COUNTRIES:
        return "country"

    text = (content or "").lower()
    best, best_score = "organization", 0.0
    for etype, indicators, weight in _TYPE_RULES:
        score = weight * sum(1 for ind in indicators if ind in text)
        if score > best_score:
            best, best_score = etype, score
    return best


def _combined_content(results: List[SearchResult]) -> str:
    return "\n\n".join(r.content for r in results)


def _merge_locations(into: List[GeoLocation], more: List[GeoLocation]) -> None:
    seen = {loc.place_name.lower() for loc in into}
    for loc in more:
        k = loc.place_name.lower()
        if k not in seen:
            seen.add(k)
            into.append(loc)


class EntityResearcher:
    """Search-backed entity profiles with geocoded areas of operation."""

    def __init__(
        self,
        search: SearchProvider,
        resolver: LocationResolver,
        dossiers: Optional[DossierTaskClient] = None,
        max_locations: int = 10,
    ):
        self.search = search
        self.resolver = resolver
        self.dossiers = dossiers
        self.max_locations = max_locations

    async def _location_text(self, name: str, access_token: Optional[str]) -> str:
        try:
            resp = await self.search.search(
                LOCATIONS_QUERY.format(name=name), max_results=15, access_token=access_token, search_type="all"
            )
        except UpstreamUnavailable as e:
            logger.warning(f"[ENTITY] location search failed for {name!r}: {e}")
            return ""
        if resp.requires_reauth:
            return ""
        return _combined_content(resp.results)

    async def research(
        self,
        name: str,
        include_deep_research: bool = False,
        access_token: Optional[str] = None,
        poll_interval: float = 5.0,
        max_attempts: int = 120,
    ) -> Optional[EntityProfile]:
        """Profile for name, or None when the search finds nothing."""
        name = (name or "").strip()
        if not name:
            raise InputRejected("Entity name is required")

        profile_resp, location_text = await asyncio.gather(
            self.search.search(
                PROFILE_QUERY.format(name=name), max_results=10, access_token=access_token, search_type="all"
            ),
            self._location_text(name, access_token),
        )
        if profile_resp.requires_reauth:
            raise AuthRequired("Session expired. Please sign in again.")
        if not profile_resp.results:
            return None

        combined = _combined_content(profile_resp.results)
        description = combined[:DESCRIPTION_CHARS]

        locations: List[GeoLocation] = []
        _merge_locations(
            locations,
            await self.resolver.resolve_from_text(
                f"{description} {location_text}", title=name, max_locations=self.max_locations
            ),
        )

        profile = EntityProfile(
            id=f"entity_{uuid.uuid4().hex}",
            name=name,
            type=classify_entity_type(name, combined),
            description=description,
            locations=locations,
            sources=[Source(title=r.title, url=r.url) for r in profile_resp.results],
        )

        if include_deep_research and self.dossiers is not None:
            task_id = await self.dossiers.create(name, access_token=access_token)
            task = await self.dossiers.wait_to_completion(
                task_id, poll_interval=poll_interval, max_attempts=max_attempts, access_token=access_token
            )
            profile.research_summary = task.output if task.status == "completed" else task.error
            if task.output:
                _merge_locations(
                    profile.locations,
                    await self.resolver.resolve_from_text(task.output, max_locations=self.max_locations),
                )

        logger.info(f"[ENTITY] name={name!r} type={profile.type} locations={len(profile.locations)}")
        return profile
