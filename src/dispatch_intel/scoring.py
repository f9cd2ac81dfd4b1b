from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dispatch_intel.models import (
    EnvironmentalSignal,
    HistoricalSummary,
    MediaAnalysis,
    TextAnalysis,
    WeatherSignal,
    parse_timestamp,
    utc_now,
)


@dataclass(frozen=True)
class RiskWeights:
    weather: float = 0.30
    historical: float = 0.25
    environmental: float = 0.25
    temporal: float = 0.20


@dataclass(frozen=True)
class PriorityWeights:
    text: float = 0.4
    media: float = 0.3
    location: float = 0.2
    temporal: float = 0.1


DEFAULT_RISK_WEIGHTS = RiskWeights()
DEFAULT_PRIORITY_WEIGHTS = PriorityWeights()

DAYTIME_HOURS = range(10, 17)
NIGHT_HOURS = frozenset({22, 23, 0, 1, 2, 3, 4, 5, 6})

MEDIA_SIGNAL_WEIGHTS = {
    "fire_detected": 0.9,
    "smoke_detected": 0.7,
    "structural_damage": 0.8,
    "people_detected": 0.9,
}
MAX_MEDIA_SCORE = sum(MEDIA_SIGNAL_WEIGHTS.values())


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _flag(condition: bool) -> float:
    return 0.8 if condition else 0.2


def _hour(timestamp) -> int:
    return parse_timestamp(timestamp, default=utc_now()).hour


def weather_score(weather: WeatherSignal) -> float:
    return (
        _flag(weather.temperature > 30)
        + _flag(weather.humidity < 30)
        + _flag(weather.wind_speed > 20)
        + _flag(weather.drought_index > 0.7)
    ) / 4


def historical_score(historical: HistoricalSummary) -> float:
    return min((historical.total_incidents or 0) / 10, 1.0)


def environmental_score(environmental: EnvironmentalSignal) -> float:
    return (
        environmental.vegetation_dryness
        + _flag(environmental.air_quality < 50)
        + environmental.proximity_to_risk
        + environmental.building_density
    ) / 4


def daytime_score(timestamp) -> float:
    return 0.8 if _hour(timestamp) in DAYTIME_HOURS else 0.3


def night_score(timestamp) -> float:
    return 0.8 if _hour(timestamp) in NIGHT_HOURS else 0.5


def compute_fire_risk_score(
    weather: WeatherSignal,
    historical: HistoricalSummary,
    environmental: EnvironmentalSignal,
    timestamp: datetime,
    weights: RiskWeights = DEFAULT_RISK_WEIGHTS,
) -> float:
    return clamp01(
        weather_score(weather) * weights.weather
        + historical_score(historical) * weights.historical
        + environmental_score(environmental) * weights.environmental
        + daytime_score(timestamp) * weights.temporal
    )


def media_score(media: Optional[MediaAnalysis], normalize: bool = False) -> float:
    """Sum of detected-signal weights; up to 3.3 unless normalised."""
    if media is None:
        return 0.0
    score = sum(weight for attr, weight in MEDIA_SIGNAL_WEIGHTS.items() if getattr(media, attr))
    return score / MAX_MEDIA_SCORE if normalize else score


def compute_priority_score(
    text: Optional[TextAnalysis],
    media: Optional[MediaAnalysis],
    location_risk_score: float,
    timestamp: datetime,
    weights: PriorityWeights = DEFAULT_PRIORITY_WEIGHTS,
    normalize_media: bool = False,
) -> float:
    text_score = (text.urgency_score + text.severity_score) / 2 if text is not None else 0.0
    return clamp01(
        text_score * weights.text
        + media_score(media, normalize=normalize_media) * weights.media
        + location_risk_score * weights.location
        + night_score(timestamp) * weights.temporal
    )
