"""
Event classification: category, threat level and primary location.

Two interchangeable classifiers share one capability:
  - AIClassifier: structured chat completion constrained to the fixed enums
  - KeywordClassifier: deterministic indicator scoring (scoring.py)
EventClassifier tries the AI classifier when one is configured and falls
back to keywords on any provider failure.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from threat_monitor.errors import MonitorError, UpstreamUnavailable
from threat_monitor.geo_lookup import LocationResolver
from threat_monitor.providers import ChatProvider
from threat_monitor.schema import CATEGORIES, THREAT_LEVELS, EventCategory, GeoLocation, ThreatLevel
from threat_monitor.scoring import classify_category, classify_threat_level

logger = logging.getLogger(__name__)

AI_CONTENT_CHARS = 1000

CLASSIFIER_PROMPT = """You are an intelligence analyst classifying global events. Analyze the headline and content to determine:
1. Category - the type of event
2. Threat Level - severity based on potential impact and urgency
3. Location - the primary geographic location where this is happening

Categories:
- conflict: armed conflicts, wars, military clashes
- protest: demonstrations, civil unrest, riots
- disaster: natural disasters, earthquakes, floods, hurricanes, wildfires
- diplomatic: international relations, treaties, sanctions
- economic: financial markets, trade, economic crises
- terrorism: terror attacks, bombings, extremist violence
- cyber: cyberattacks, data breaches, hacking
- health: disease outbreaks, pandemics, public health emergencies
- environmental: climate events, pollution, environmental damage
- military: military exercises, deployments, defense activities
- crime: murders, kidnappings, drug trafficking, shootings, organized crime
- piracy: maritime piracy, shipping attacks, hijacking at sea
- infrastructure: water reservoir levels, power grid, utilities, dams
- commodities: grocery prices, food supply, commodity shortages

Be precise with locations - use actual place names (cities, countries, regions).
For threat level:
- critical: imminent danger, mass casualties, nuclear/WMD threats
- high: significant active threats, major incidents, escalating situations
- medium: developing situations, moderate concern, ongoing tensions
- low: minor incidents, contained events, localized issues
- info: routine updates, announcements, analysis pieces"""

EVENT_CLASSIFICATION_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "event_classification",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": list(CATEGORIES),
                    "description": "The primary category of the event",
                },
                "threatLevel": {
                    "type": "string",
                    "enum": list(THREAT_LEVELS),
                    "description": "Severity level of the event",
                },
                "primaryLocation": {
                    "type": "string",
                    "description": "The main geographic location (city, region, or country) where the event is occurring.",
                },
                "country": {
                    "type": ["string", "null"],
                    "description": "The country where the event is occurring, if identifiable",
                },
            },
            "required": ["category", "threatLevel", "primaryLocation", "country"],
            "additionalProperties": False,
        },
    },
}


class Classification(BaseModel):
    category: EventCategory
    threat_level: ThreatLevel
    location: Optional[GeoLocation] = None


class _AIVerdict(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: EventCategory
    threat_level: ThreatLevel = Field(alias="threatLevel")
    primary_location: str = Field(default="", alias="primaryLocation")
    country: Optional[str] = None


class Classifier(Protocol):
    async def classify(self, title: str, content: str) -> Classification: ...


class AIClassifier:
    def __init__(self, chat: ChatProvider, resolver: LocationResolver):
        self.chat = chat
        self.resolver = resolver

    @property
    def available(self) -> bool:
        return self.chat.configured

    async def classify(self, title: str, content: str) -> Classification:
        messages = [
            {"role": "system", "content": CLASSIFIER_PROMPT},
            {"role": "user", "content": f"Headline: {title}\n\nContent: {(content or '')[:AI_CONTENT_CHARS]}"},
        ]
        raw = await self.chat.complete(
            messages,
            max_tokens=200,
            temperature=0.0,
            response_format=EVENT_CLASSIFICATION_FORMAT,
        )
        try:
            verdict = _AIVerdict.model_validate_json(raw)
        except ValidationError as e:
            raise UpstreamUnavailable(f"malformed classification payload: {e.error_count()} errors") from e

        location = None
        if verdict.primary_location:
            location = await self.resolver.geocode(verdict.primary_location)
        if location is None and verdict.country:
            location = await self.resolver.geocode(verdict.country)

        return Classification(category=verdict.category, threat_level=verdict.threat_level, location=location)


class KeywordClassifier:
    def __init__(self, resolver: LocationResolver):
        self.resolver = resolver

    async def classify(self, title: str, content: str) -> Classification:
        full_text = f"{title} {content}"
        locations = await self.resolver.resolve_from_text(full_text, max_locations=1)
        return Classification(
            category=classify_category(full_text),
            threat_level=classify_threat_level(full_text),
            location=locations[0] if locations else None,
        )


class EventClassifier:
    def __init__(self, keyword: KeywordClassifier, ai: Optional[AIClassifier] = None):
        self.keyword = keyword
        self.ai = ai

    @classmethod
    def build(cls, resolver: LocationResolver, chat: Optional[ChatProvider] = None) -> "EventClassifier":
        ai = AIClassifier(chat, resolver) if chat is not None else None
        return cls(KeywordClassifier(resolver), ai)

    @property
    def ai_enabled(self) -> bool:
        return self.ai is not None and self.ai.available

    async def classify(self, title: str, content: str) -> Classification:
        if self.ai_enabled:
            try:
                return await self.ai.classify(title, content)
            except MonitorError as e:
                logger.warning(f"[CLASSIFY] AI path unavailable, using keywords: {e}")
        return await self.keyword.classify(title, content)
