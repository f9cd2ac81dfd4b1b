from __future__ import annotations

import math
from typing import Optional

from dispatch_intel.models import Location, TextAnalysis


URGENCY_KEYWORDS = ("fire", "explosion", "smoke", "burning", "emergency", "help")
SEVERITY_KEYWORDS = ("large", "spreading", "trapped", "injured", "building")

KEYWORD_WEIGHT = 0.2
TEXT_CONFIDENCE = 0.8
EARTH_RADIUS_KM = 6371.0


def haversine_km(origin: Location, target: Location) -> float:
    lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
    lat2, lon2 = math.radians(target.latitude), math.radians(target.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _keyword_score(text: str, keywords) -> float:
    hits = sum(1 for keyword in keywords if keyword in text)
    return min(hits * KEYWORD_WEIGHT, 1.0)


def analyze_incident_text(description: Optional[str]) -> Optional[TextAnalysis]:
    """Keyword triage of a caller's description.

    Matching is case-insensitive substring search, so "fire" also counts
    inside "firefighters". Returns None when there is no text to analyse.
    """
    if not description:
        return None

    text = description.lower()
    return TextAnalysis(
        urgency_score=_keyword_score(text, URGENCY_KEYWORDS),
        severity_score=_keyword_score(text, SEVERITY_KEYWORDS),
        confidence=TEXT_CONFIDENCE,
        key_phrases=[kw for kw in URGENCY_KEYWORDS + SEVERITY_KEYWORDS if kw in text],
    )
