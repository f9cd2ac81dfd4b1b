from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from dispatch_intel.models import MediaAnalysis, Recommendation, ResponsePlan, TextAnalysis


RISK_LEVELS = ("MINIMAL", "LOW", "MODERATE", "HIGH", "EXTREME")
PRIORITY_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
ESCALATION_LEVELS = ("MINIMAL", "LOW", "MODERATE", "HIGH", "CRITICAL")

_RISK_CUTS = ((0.8, "EXTREME"), (0.6, "HIGH"), (0.4, "MODERATE"), (0.2, "LOW"))
_PRIORITY_CUTS = ((0.8, "CRITICAL"), (0.6, "HIGH"), (0.4, "MEDIUM"))
_ESCALATION_CUTS = ((0.8, "CRITICAL"), (0.6, "HIGH"), (0.4, "MODERATE"), (0.2, "LOW"))

PRIORITY_RANK = {"immediate": 0, "critical": 1, "high": 2, "medium": 3, "low": 4}


def _step(score: float, cuts: Sequence[Tuple[float, str]], floor: str) -> str:
    for cut, label in cuts:
        if score >= cut:
            return label
    return floor


def risk_level(score: float) -> str:
    return _step(score, _RISK_CUTS, "MINIMAL")


def priority_level(score: float) -> str:
    return _step(score, _PRIORITY_CUTS, "LOW")


def escalation_risk_level(probability: float) -> str:
    return _step(probability, _ESCALATION_CUTS, "MINIMAL")


def by_priority(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
    return sorted(recommendations, key=lambda rec: PRIORITY_RANK.get(rec.priority, len(PRIORITY_RANK)))


def recommend_response(priority_score: float) -> ResponsePlan:
    if priority_score >= 0.8:
        return ResponsePlan(
            response_type="immediate",
            recommended_units=3,
            estimated_response_time="2-4 minutes",
            special_equipment=["ladder_truck", "rescue_unit"],
            additional_resources=["ambulance", "hazmat_team"],
        )
    if priority_score >= 0.6:
        return ResponsePlan(
            response_type="urgent",
            recommended_units=2,
            estimated_response_time="4-8 minutes",
            special_equipment=["fire_engine"],
            additional_resources=["ambulance"],
        )
    return ResponsePlan(
        response_type="standard",
        recommended_units=1,
        estimated_response_time="8-15 minutes",
        special_equipment=["fire_engine"],
        additional_resources=[],
    )


def risk_recommendations(risk_score: float) -> List[Recommendation]:
    recommendations = []
    if risk_score >= 0.8:
        recommendations.append(
            Recommendation(
                category="immediate",
                priority="critical",
                action="Deploy preventive fire patrols in high-risk areas",
                reason="Extreme fire risk detected",
            )
        )
    if risk_score >= 0.6:
        recommendations.append(
            Recommendation(
                category="preventive",
                priority="high",
                action="Issue fire safety warnings to local residents",
                reason="High fire risk conditions present",
            )
        )
    recommendations.append(
        Recommendation(
            category="monitoring",
            priority="medium",
            action="Increase monitoring frequency for this area",
            reason=f"Fire risk level: {risk_level(risk_score)}",
        )
    )
    return by_priority(recommendations)


def estimate_severity(priority_score: float, media: Optional[MediaAnalysis]) -> str:
    # later rules override earlier ones
    severity = "minor"
    if priority_score >= 0.8:
        severity = "major"
    elif priority_score >= 0.6:
        severity = "moderate"

    if media is not None and media.structural_damage:
        severity = "major"
    if media is not None and media.people_detected and priority_score >= 0.6:
        severity = "critical"
    return severity


def calculate_confidence(text: Optional[TextAnalysis], media: Optional[MediaAnalysis]) -> float:
    if text is not None and media is not None:
        return (text.confidence + media.confidence) / 2
    if text is not None:
        return text.confidence * 0.8
    return 0.5
