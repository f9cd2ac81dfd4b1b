from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from dispatch_intel import escalation, recommend, scoring
from dispatch_intel.allocation import ResourceAllocator
from dispatch_intel.errors import ValidationError
from dispatch_intel.intelligence import analyze_incident_text
from dispatch_intel.models import (
    DEFAULT_LOCATION,
    AllocationPlan,
    Checkpoint,
    EscalationPrediction,
    EscalationTimeline,
    MediaAnalysis,
    RiskAssessment,
    RiskFactors,
    TriageAnalysis,
    TriageResult,
    location_of,
    parse_timestamp,
    utc_now,
)
from dispatch_intel.signals import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_WEATHER,
    UNAVAILABLE_HISTORY,
    MediaAnalyzer,
    SignalGatherer,
)

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 0.5


class PredictiveService:
    """Risk scoring, triage, escalation prediction and resource allocation.

    Holds only collaborators and settings, so one instance can serve
    concurrent callers.
    """

    def __init__(
        self,
        gatherer: Optional[SignalGatherer] = None,
        media_analyzer: Optional[MediaAnalyzer] = None,
        allocator: Optional[ResourceAllocator] = None,
        risk_weights: scoring.RiskWeights = scoring.DEFAULT_RISK_WEIGHTS,
        priority_weights: scoring.PriorityWeights = scoring.DEFAULT_PRIORITY_WEIGHTS,
        normalize_media_score: bool = False,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self.gatherer = gatherer or SignalGatherer()
        self.media_analyzer = media_analyzer
        self.allocator = allocator or ResourceAllocator()
        self.risk_weights = risk_weights
        self.priority_weights = priority_weights
        self.normalize_media_score = normalize_media_score
        self.clock = clock

    def _now(self):
        return parse_timestamp(self.clock(), default=utc_now())

    def calculate_fire_risk_score(self, location_data: Optional[Mapping[str, Any]] = None) -> RiskAssessment:
        location_data = location_data if isinstance(location_data, Mapping) else {}
        location = location_of(location_data)
        timestamp = parse_timestamp(location_data.get("timestamp"), default=self._now())

        try:
            weather = self.gatherer.get_weather(location)
            historical = self.gatherer.get_historical_summary(location, timestamp)
            environmental = self.gatherer.get_environmental_signal(location)

            risk_score = scoring.compute_fire_risk_score(
                weather, historical, environmental, timestamp, weights=self.risk_weights
            )
            return RiskAssessment(
                risk_score=risk_score,
                risk_level=recommend.risk_level(risk_score),
                recommendations=recommend.risk_recommendations(risk_score),
                factors=RiskFactors(weather=weather, historical=historical, environmental=environmental),
                location=location,
                timestamp=self._now(),
            )
        except Exception:
            logger.exception("Fire risk scoring failed for %s, returning moderate default", location)
            return self._fallback_risk(location)

    def _fallback_risk(self, location=DEFAULT_LOCATION) -> RiskAssessment:
        return RiskAssessment(
            risk_score=FALLBACK_SCORE,
            risk_level=recommend.risk_level(FALLBACK_SCORE),
            recommendations=recommend.risk_recommendations(FALLBACK_SCORE),
            factors=RiskFactors(weather=DEFAULT_WEATHER, historical=UNAVAILABLE_HISTORY, environmental=DEFAULT_ENVIRONMENT),
            location=location,
            timestamp=self._now(),
            degraded=True,
        )

    def _analyze_media(self, media) -> Optional[MediaAnalysis]:
        if not media or self.media_analyzer is None:
            return None
        try:
            return self.media_analyzer.analyze_media(list(media))
        except Exception:
            logger.warning("Media analysis failed, scoring without media", exc_info=True)
            return None

    def perform_intelligent_triage(self, incident_data: Optional[Mapping[str, Any]]) -> TriageResult:
        if not incident_data or not isinstance(incident_data, Mapping):
            raise ValidationError("Incident data is required")
        description = incident_data.get("description")
        media = incident_data.get("media")
        if not description and not media:
            raise ValidationError("Incident must have description or media")

        try:
            timestamp = parse_timestamp(incident_data.get("timestamp"), default=self._now())
            text_analysis = analyze_incident_text(description)
            media_analysis = self._analyze_media(media)

            location = location_of(incident_data)
            location_risk = self.calculate_fire_risk_score(
                {"latitude": location.latitude, "longitude": location.longitude, "timestamp": timestamp}
            )

            priority_score = scoring.compute_priority_score(
                text_analysis,
                media_analysis,
                location_risk.risk_score,
                timestamp,
                weights=self.priority_weights,
                normalize_media=self.normalize_media_score,
            )
            result = TriageResult(
                priority_score=priority_score,
                priority_level=recommend.priority_level(priority_score),
                confidence=scoring.clamp01(recommend.calculate_confidence(text_analysis, media_analysis)),
                response_recommendation=recommend.recommend_response(priority_score),
                analysis=TriageAnalysis(text=text_analysis, media=media_analysis, location=location_risk),
                estimated_severity=recommend.estimate_severity(priority_score, media_analysis),
                timestamp=self._now(),
            )
        except Exception:
            logger.exception("Triage failed, returning medium-priority default")
            return TriageResult(
                priority_score=FALLBACK_SCORE,
                priority_level=recommend.priority_level(FALLBACK_SCORE),
                confidence=FALLBACK_SCORE,
                response_recommendation=recommend.recommend_response(FALLBACK_SCORE),
                analysis=None,
                estimated_severity="moderate",
                timestamp=self._now(),
                degraded=True,
            )

        logger.info("Triage priority %.3f (%s)", result.priority_score, result.priority_level)
        return result

    def predict_incident_escalation(self, incident: Optional[Mapping[str, Any]]) -> EscalationPrediction:
        incident = incident if isinstance(incident, Mapping) else {}
        now = self._now()
        try:
            location = location_of(incident)
            environmental = self.gatherer.get_environmental_signal(location)
            factors = escalation.build_factors(incident, environmental, location, now)
            probability = escalation.escalation_probability(factors)
            return EscalationPrediction(
                probability=probability,
                risk_level=recommend.escalation_risk_level(probability),
                timeline=escalation.escalation_timeline(probability, factors),
                prevention_actions=escalation.prevention_actions(probability, factors),
                factors=factors,
                recommendations=escalation.escalation_recommendations(probability, factors),
                timestamp=now,
            )
        except Exception:
            logger.exception("Escalation prediction failed for incident %s", incident.get("id"))
            return EscalationPrediction(
                probability=FALLBACK_SCORE,
                risk_level=recommend.escalation_risk_level(FALLBACK_SCORE),
                timeline=EscalationTimeline(
                    estimated_time_to_escalation=escalation.BASE_MINUTES_TO_ESCALATION,
                    confidence=FALLBACK_SCORE,
                    critical_factors=[],
                    recommended_checkpoints=[
                        Checkpoint(time=t, action=action) for t, action in escalation.CHECKPOINTS
                    ],
                ),
                prevention_actions=[],
                factors=None,
                recommendations=[],
                timestamp=now,
                degraded=True,
            )

    def optimize_resource_allocation(
        self, incidents: Iterable[Mapping[str, Any]], resources: Iterable[Mapping[str, Any]]
    ) -> AllocationPlan:
        return self.allocator.allocate(incidents or [], resources or [])
