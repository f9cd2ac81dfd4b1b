from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_LATITUDE = 40.7128
DEFAULT_LONGITUDE = -74.0060


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> Optional[datetime]:
    """Coerce a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are taken to be UTC already. Unparseable input returns
    ``default``.
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        ts = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return default
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _as_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    @classmethod
    def from_mapping(cls, data: Any, default: Optional["Location"] = None) -> Optional["Location"]:
        if isinstance(data, Location):
            return data
        if not isinstance(data, Mapping):
            return default
        lat = _as_float(data.get("latitude", data.get("lat")))
        lng = _as_float(data.get("longitude", data.get("lng", data.get("lon"))))
        if lat is None or lng is None:
            return default
        return cls(latitude=lat, longitude=lng)


DEFAULT_LOCATION = Location(DEFAULT_LATITUDE, DEFAULT_LONGITUDE)


def location_of(data: Mapping[str, Any], default: Optional[Location] = DEFAULT_LOCATION) -> Optional[Location]:
    """Read a location either nested under ``location`` or flat on the record."""
    nested = Location.from_mapping(data.get("location"))
    if nested is not None:
        return nested
    return Location.from_mapping(data, default)


def wrap_longitude(longitude: float) -> float:
    return (longitude + 180.0) % 360.0 - 180.0


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lng window around a point.

    Longitudes are kept in [-180, 180]; a box crossing the antimeridian has
    ``min_longitude > max_longitude``.
    """

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    @classmethod
    def around(cls, center: Location, radius_km: float) -> "BoundingBox":
        lat_delta = radius_km / 111.0
        cos_lat = math.cos(math.radians(center.latitude))
        lng_delta = 180.0 if cos_lat < 1e-6 else radius_km / (111.32 * cos_lat)
        if lng_delta >= 180.0:
            min_lng, max_lng = -180.0, 180.0
        else:
            min_lng = wrap_longitude(center.longitude - lng_delta)
            max_lng = wrap_longitude(center.longitude + lng_delta)
        return cls(
            min_latitude=center.latitude - lat_delta,
            max_latitude=center.latitude + lat_delta,
            min_longitude=min_lng,
            max_longitude=max_lng,
        )

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_longitude > self.max_longitude

    def longitude_ranges(self) -> List[Tuple[float, float]]:
        if self.crosses_antimeridian:
            return [(self.min_longitude, 180.0), (-180.0, self.max_longitude)]
        return [(self.min_longitude, self.max_longitude)]

    def contains(self, location: Location) -> bool:
        if not self.min_latitude <= location.latitude <= self.max_latitude:
            return False
        longitude = wrap_longitude(location.longitude) if abs(location.longitude) > 180.0 else location.longitude
        return any(low <= longitude <= high for low, high in self.longitude_ranges())


@dataclass(frozen=True)
class IncidentRecord:
    incident_id: str
    location: Location
    created_at: Optional[datetime]
    resolved_at: Optional[datetime] = None
    response_time: Optional[float] = None
    incident_type: str = "fire"
    severity: Optional[str] = None


@dataclass(frozen=True)
class WeatherSignal:
    temperature: float
    humidity: float
    wind_speed: float
    precipitation: float
    drought_index: float


@dataclass(frozen=True)
class EnvironmentalSignal:
    vegetation_dryness: float
    air_quality: float
    proximity_to_risk: float
    building_density: float


@dataclass(frozen=True)
class SeasonalPattern:
    counts: Dict[str, int]
    percentages: Dict[str, float]
    peak_season: str
    current_season: str
    risk_multiplier: float
    total_incidents: int


@dataclass(frozen=True)
class TimePattern:
    hourly_distribution: List[int]
    peak_hour: int
    peak_period: str
    current_hour: int
    risk_multiplier: float
    total_incidents: int


@dataclass(frozen=True)
class HistoricalSummary:
    total_incidents: int
    average_response_time: float
    seasonal_pattern: Optional[SeasonalPattern] = None
    time_pattern: Optional[TimePattern] = None


@dataclass(frozen=True)
class TextAnalysis:
    urgency_score: float
    severity_score: float
    confidence: float
    key_phrases: List[str]


@dataclass(frozen=True)
class MediaAnalysis:
    fire_detected: bool
    smoke_detected: bool
    structural_damage: bool
    people_detected: bool
    confidence: float


@dataclass(frozen=True)
class Recommendation:
    category: str
    priority: str
    action: str
    reason: str


@dataclass(frozen=True)
class RiskFactors:
    weather: WeatherSignal
    historical: HistoricalSummary
    environmental: EnvironmentalSignal


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: float
    risk_level: str
    recommendations: List[Recommendation]
    factors: RiskFactors
    location: Location
    timestamp: datetime
    degraded: bool = False


@dataclass(frozen=True)
class ResponsePlan:
    response_type: str
    recommended_units: int
    estimated_response_time: str
    special_equipment: List[str]
    additional_resources: List[str]


@dataclass(frozen=True)
class TriageAnalysis:
    text: Optional[TextAnalysis]
    media: Optional[MediaAnalysis]
    location: RiskAssessment


@dataclass(frozen=True)
class TriageResult:
    priority_score: float
    priority_level: str
    confidence: float
    response_recommendation: ResponsePlan
    analysis: Optional[TriageAnalysis]
    estimated_severity: str
    timestamp: datetime
    degraded: bool = False


@dataclass(frozen=True)
class Resource:
    resource_id: Any
    resource_type: str
    location: Location
    status: Optional[str] = None
    experience_level: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Resource":
        return cls(
            resource_id=data.get("id"),
            resource_type=str(data.get("type") or "fire_engine").lower(),
            location=location_of(data),
            status=data.get("status"),
            experience_level=_as_float(data.get("experience_level")),
        )


@dataclass(frozen=True)
class AllocationIncident:
    incident_id: Any
    incident_type: str
    location: Location
    priority: float = 0.0
    risk_score: float = 0.0

    @property
    def weight(self) -> float:
        return self.priority * self.risk_score

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AllocationIncident":
        return cls(
            incident_id=data.get("id"),
            incident_type=str(data.get("type") or "fire").lower(),
            location=location_of(data),
            priority=_as_float(data.get("priority"), 0.0),
            risk_score=_as_float(data.get("risk_score"), 0.0),
        )


@dataclass(frozen=True)
class Assignment:
    incident_id: Any
    resource_id: Any
    estimated_response_time: float
    confidence: float


@dataclass(frozen=True)
class AllocationPlan:
    assignments: List[Assignment]
    efficiency: float
    recommendations: List[Recommendation]
    unassigned_incident_ids: List[Any] = field(default_factory=list)
    strategy: str = "greedy"


@dataclass(frozen=True)
class ResponseFactors:
    response_time: float
    resources_deployed: int
    personnel_experience: float


@dataclass(frozen=True)
class IncidentFactors:
    incident_type: Optional[str]
    severity: Optional[str]
    location: Location
    hours_active: float


@dataclass(frozen=True)
class EscalationFactors:
    environmental: EnvironmentalSignal
    response: ResponseFactors
    incident: IncidentFactors


@dataclass(frozen=True)
class Checkpoint:
    time: int
    action: str


@dataclass(frozen=True)
class EscalationTimeline:
    estimated_time_to_escalation: float
    confidence: float
    critical_factors: List[str]
    recommended_checkpoints: List[Checkpoint]


@dataclass(frozen=True)
class EscalationPrediction:
    probability: float
    risk_level: str
    timeline: EscalationTimeline
    prevention_actions: List[Recommendation]
    factors: Optional[EscalationFactors]
    recommendations: List[Recommendation]
    timestamp: datetime
    degraded: bool = False
