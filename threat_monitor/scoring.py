# threat_monitor/scoring.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Pattern, Sequence, Tuple

from config import WEIGHTS
from threat_monitor.schema import EventCategory, ThreatLevel

# category -> tier -> indicator phrases
CATEGORY_INDICATORS: Dict[str, Dict[str, List[str]]] = {
    "terrorism": {
        "strong": ["terrorist", "terrorism", "suicide bomb", "car bomb", "isis", "al-qaeda", "al-shabaab", "boko haram", "jihadist"],
        "moderate": ["extremist", "bombing", "hostage", "militant attack", "ied", "massacre"],
        "weak": ["radicalized", "extremism"],
    },
    "conflict": {
        "strong": ["war", "airstrike", "shelling", "armed conflict", "offensive", "frontline", "ceasefire"],
        "moderate": ["clash", "fighting", "rebel", "insurgent", "militia", "invasion", "battle", "killed"],
        "weak": ["tension", "hostilities", "casualties", "attack"],
    },
    "military": {
        "strong": ["military exercise", "troop deployment", "missile test", "warship", "fighter jet", "nuclear test"],
        "moderate": ["military", "troops", "navy", "army", "air force", "drone", "missile", "defense ministry", "deployment"],
        "weak": ["defense", "pentagon", "nato", "soldier"],
    },
    "cyber": {
        "strong": ["cyberattack", "cyber attack", "ransomware", "data breach", "zero-day", "malware"],
        "moderate": ["hacker", "hacking", "ddos", "phishing", "breach", "exploit", "vulnerability"],
        "weak": ["cyber", "botnet", "spyware"],
    },
    "disaster": {
        "strong": ["earthquake", "tsunami", "hurricane", "typhoon", "cyclone", "volcanic eruption", "wildfire", "flood"],
        "moderate": ["landslide", "tornado", "avalanche", "eruption", "magnitude", "evacuation", "storm"],
        "weak": ["disaster", "emergency", "rescue", "aftershock"],
    },
    "health": {
        "strong": ["outbreak", "epidemic", "pandemic", "cholera", "ebola", "mpox"],
        "moderate": ["virus", "infection", "disease", "quarantine", "vaccine", "bird flu"],
        "weak": ["hospital", "health ministry", "patients"],
    },
    "piracy": {
        "strong": ["piracy", "pirate", "hijacked vessel", "ship hijack", "houthi attack on ship"],
        "moderate": ["shipping attack", "maritime security", "tanker seized", "vessel seized", "boarded"],
        "weak": ["shipping lane", "maritime", "vessel", "tanker"],
    },
    "crime": {
        "strong": ["cartel", "kidnapping", "kidnap", "drug trafficking", "homicide", "mass shooting"],
        "moderate": ["murder", "shooting", "gang", "smuggling", "organized crime", "trafficking"],
        "weak": ["arrest", "police", "crime", "robbery"],
    },
    "protest": {
        "strong": ["protest", "demonstration", "riot", "uprising", "civil unrest"],
        "moderate": ["protester", "demonstrator", "rally", "strike action", "tear gas"],
        "weak": ["dissent", "crackdown", "curfew"],
    },
    "infrastructure": {
        "strong": ["power grid", "blackout", "dam failure", "pipeline explosion", "water shortage"],
        "moderate": ["power outage", "reservoir", "dam", "water supply", "pipeline", "bridge collapse"],
        "weak": ["infrastructure", "utility", "electricity"],
    },
    "environmental": {
        "strong": ["oil spill", "toxic spill", "climate crisis", "heatwave", "drought"],
        "moderate": ["pollution", "deforestation", "emissions", "contamination", "heat wave"],
        "weak": ["climate", "environmental", "wildlife"],
    },
    "commodities": {
        "strong": ["food shortage", "grain export", "famine", "food crisis"],
        "moderate": ["food prices", "commodity", "wheat", "grain", "fuel shortage", "supply shortage"],
        "weak": ["grocery", "shortage", "prices"],
    },
    "diplomatic": {
        "strong": ["sanctions", "peace talks", "summit", "treaty", "embassy"],
        "moderate": ["diplomat", "diplomatic", "negotiation", "foreign minister", "ambassador", "bilateral"],
        "weak": ["talks", "agreement", "envoy", "united nations"],
    },
    "economic": {
        "strong": ["recession", "market crash", "currency collapse", "debt default", "sovereign default", "inflation"],
        "moderate": ["stock market", "tariff", "trade war", "gdp", "central bank", "interest rate"],
        "weak": ["economy", "economic", "trade", "investor"],
    },
}

# ties break toward the earlier category
CATEGORY_PRIORITY: Tuple[EventCategory, ...] = (
    "terrorism",
    "conflict",
    "military",
    "cyber",
    "disaster",
    "health",
    "piracy",
    "crime",
    "protest",
    "infrastructure",
    "environmental",
    "commodities",
    "diplomatic",
    "economic",
)

DEFAULT_CATEGORY: EventCategory = "conflict"

THREAT_INDICATORS: Dict[str, Dict[str, List[str]]] = {
    "critical": {
        "strong": ["nuclear", "mass casualties", "chemical weapon", "biological weapon", "genocide", "dozens killed", "hundreds killed"],
        "moderate": ["state of emergency", "invasion", "catastrophic", "martial law"],
        "weak": ["imminent"],
    },
    "high": {
        "strong": ["killed", "deadly", "explosion", "airstrike", "missile strike", "bombing", "massacre"],
        "moderate": ["attack", "casualties", "wounded", "hostage", "escalation", "evacuation"],
        "weak": ["severe", "major"],
    },
    "medium": {
        "strong": ["clash", "protest", "injured", "threat"],
        "moderate": ["tension", "warning", "dispute", "unrest", "arrest"],
        "weak": ["concern", "developing", "ongoing"],
    },
    "low": {
        "strong": ["minor", "contained", "localized"],
        "moderate": ["limited", "small", "isolated"],
        "weak": ["calm", "stable"],
    },
    "info": {
        "strong": ["announcement", "analysis", "opinion", "report released"],
        "moderate": ["statement", "meeting", "visit", "plans"],
        "weak": ["update", "review"],
    },
}

# most severe first; ties break toward the more severe level
LEVEL_ORDER: Tuple[ThreatLevel, ...] = ("critical", "high", "medium", "low", "info")

DEFAULT_THREAT_LEVEL: ThreatLevel = "low"

THREAT_PRIORITY = {level: i for i, level in enumerate(LEVEL_ORDER)}
UNKNOWN_PRIORITY = len(LEVEL_ORDER)

_INFLECTIONS = r"(?:s|es|ed|ing|er|ers)?"


def _phrase_pattern(phrase: str) -> Pattern[str]:
    return re.compile(rf"\b{re.escape(phrase)}{_INFLECTIONS}\b")


def _compile(table: Dict[str, Dict[str, List[str]]]) -> Dict[str, List[Tuple[str, Pattern[str], int]]]:
    out: Dict[str, List[Tuple[str, Pattern[str], int]]] = {}
    for label, tiers in table.items():
        rows = []
        for tier, phrases in tiers.items():
            for p in phrases:
                rows.append((p, _phrase_pattern(p), WEIGHTS[tier]))
        out[label] = rows
    return out


_CATEGORY_RULES = _compile(CATEGORY_INDICATORS)
_THREAT_RULES = _compile(THREAT_INDICATORS)


def score_labels(text: str, rules: Dict[str, List[Tuple[str, Pattern[str], int]]]) -> Dict[str, int]:
    t = (text or "").lower()
    scores: Dict[str, int] = {}
    for label, patterns in rules.items():
        scores[label] = sum(weight * len(rx.findall(t)) for _, rx, weight in patterns)
    return scores


def _best(scores: Dict[str, int], order: Sequence[str], default: str) -> str:
    best, best_score = default, 0
    for label in order:
        s = scores.get(label, 0)
        if s > best_score:
            best, best_score = label, s
    return best


def classify_category(text: str) -> EventCategory:
    return _best(score_labels(text, _CATEGORY_RULES), CATEGORY_PRIORITY, DEFAULT_CATEGORY)


def classify_threat_level(text: str) -> ThreatLevel:
    return _best(score_labels(text, _THREAT_RULES), LEVEL_ORDER, DEFAULT_THREAT_LEVEL)


def indicator_hits(text: str) -> Tuple[int, List[str]]:
    """Category indicator phrases present in text, first-seen order, deduped."""
    t = (text or "").lower()
    hits: List[str] = []
    seen = set()
    for label in CATEGORY_PRIORITY:
        for phrase, rx, _ in _CATEGORY_RULES[label]:
            if phrase not in seen and rx.search(t):
                seen.add(phrase)
                hits.append(phrase)
    return len(hits), hits


# ordering
def threat_priority(level: str) -> int:
    return THREAT_PRIORITY.get(level, UNKNOWN_PRIORITY)


def _epoch(ts) -> float:
    if not isinstance(ts, datetime):
        return 0.0
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def sort_key(event) -> Tuple[int, float]:
    return threat_priority(event.threat_level), -_epoch(event.timestamp)


def canonical_sort(events: Iterable) -> List:
    """Most severe first, newest first within a level."""
    return sorted(events, key=sort_key)
