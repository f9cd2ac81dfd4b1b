from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from dispatch_intel.models import (
    Checkpoint,
    EnvironmentalSignal,
    EscalationFactors,
    EscalationTimeline,
    IncidentFactors,
    Location,
    Recommendation,
    ResponseFactors,
    parse_timestamp,
)
from dispatch_intel.recommend import escalation_risk_level
from dispatch_intel.scoring import clamp01

BASE_RESPONSE_MINUTES = 8
SEVERITY_RESPONSE_MULTIPLIERS = {"critical": 0.7, "high": 0.8}
DEFAULT_PERSONNEL_EXPERIENCE = 0.6

SEVERITY_SCORES = {"critical": 0.9, "high": 0.7, "medium": 0.4}
DEFAULT_SEVERITY_SCORE = 0.2

BASE_MINUTES_TO_ESCALATION = 60
MIN_MINUTES_TO_ESCALATION = 15
LONG_RUNNING_HOURS = 2

CHECKPOINTS = (
    (15, "Reassess incident severity"),
    (30, "Evaluate resource adequacy"),
    (60, "Consider requesting additional support"),
)


def _severity(incident: Mapping[str, Any]) -> Optional[str]:
    severity = incident.get("severity")
    return str(severity).lower() if severity else None


def estimate_response_time(incident: Mapping[str, Any]) -> float:
    """Minutes from report to response, measured when possible."""
    explicit = incident.get("response_time")
    if explicit:
        return float(explicit)

    created = parse_timestamp(incident.get("created_at"))
    resolved = parse_timestamp(incident.get("resolved_at"))
    if created and resolved:
        return (resolved - created).total_seconds() / 60

    return BASE_RESPONSE_MINUTES * SEVERITY_RESPONSE_MULTIPLIERS.get(_severity(incident), 1.0)


def average_personnel_experience(assigned: Optional[Sequence[Mapping[str, Any]]]) -> float:
    if not assigned:
        return DEFAULT_PERSONNEL_EXPERIENCE
    levels = []
    for resource in assigned:
        level = resource.get("experience_level") if isinstance(resource, Mapping) else None
        levels.append(float(level) if level else DEFAULT_PERSONNEL_EXPERIENCE)
    return sum(levels) / len(levels)


def hours_active(incident: Mapping[str, Any], now: datetime) -> float:
    created = parse_timestamp(incident.get("created_at"))
    if created is None:
        return 0.0
    return max((now - created).total_seconds() / 3600, 0.0)


def build_factors(
    incident: Mapping[str, Any],
    environmental: EnvironmentalSignal,
    location: Location,
    now: datetime,
) -> EscalationFactors:
    assigned = incident.get("assigned_resources") or []
    return EscalationFactors(
        environmental=environmental,
        response=ResponseFactors(
            response_time=estimate_response_time(incident),
            resources_deployed=len(assigned),
            personnel_experience=average_personnel_experience(assigned),
        ),
        incident=IncidentFactors(
            incident_type=incident.get("type"),
            severity=_severity(incident),
            location=location,
            hours_active=hours_active(incident, now),
        ),
    )


def escalation_probability(factors: EscalationFactors) -> float:
    env = factors.environmental
    env_score = (
        (env.vegetation_dryness or 0) * 0.3
        + (0.8 if env.air_quality < 50 else 0.2) * 0.2
        + (env.proximity_to_risk or 0) * 0.3
        + (env.building_density or 0) * 0.2
    )

    response = factors.response
    response_score = (
        (0.8 if response.response_time > 10 else 0.3) * 0.4
        + (0.7 if response.resources_deployed < 2 else 0.3) * 0.3
        + (0.8 if response.personnel_experience < 0.5 else 0.2) * 0.3
    )

    severity_score = SEVERITY_SCORES.get(factors.incident.severity, DEFAULT_SEVERITY_SCORE)
    time_score = min(factors.incident.hours_active / 2, 1.0)
    incident_score = severity_score * 0.6 + time_score * 0.4

    return clamp01(env_score * 0.25 + response_score * 0.35 + incident_score * 0.4)


def critical_factors(factors: EscalationFactors) -> List[str]:
    found = []
    if factors.environmental.vegetation_dryness > 0.7:
        found.append("High vegetation dryness")
    if factors.response.response_time > 15:
        found.append("Extended response time")
    if factors.response.resources_deployed < 2:
        found.append("Insufficient resources")
    if factors.incident.severity == "critical":
        found.append("Critical incident severity")
    return found


def escalation_timeline(probability: float, factors: EscalationFactors) -> EscalationTimeline:
    minutes = BASE_MINUTES_TO_ESCALATION * (1 - probability) * 2
    return EscalationTimeline(
        estimated_time_to_escalation=max(minutes, MIN_MINUTES_TO_ESCALATION),
        confidence=probability,
        critical_factors=critical_factors(factors),
        recommended_checkpoints=[Checkpoint(time=t, action=action) for t, action in CHECKPOINTS],
    )


def prevention_actions(probability: float, factors: EscalationFactors) -> List[Recommendation]:
    """Every matching rule contributes an action."""
    actions = []
    if probability > 0.7:
        actions.append(
            Recommendation(
                category="prevention",
                priority="immediate",
                action="Deploy additional resources immediately",
                reason="High escalation risk detected",
            )
        )
    if factors.response.resources_deployed < 2:
        actions.append(
            Recommendation(
                category="prevention",
                priority="high",
                action="Request backup units",
                reason="Insufficient resources currently deployed",
            )
        )
    if factors.environmental.vegetation_dryness > 0.7:
        actions.append(
            Recommendation(
                category="prevention",
                priority="medium",
                action="Establish wider perimeter",
                reason="High vegetation dryness increases spread risk",
            )
        )
    if factors.response.personnel_experience < 0.5:
        actions.append(
            Recommendation(
                category="prevention",
                priority="medium",
                action="Request experienced incident commander",
                reason="Current personnel may need additional expertise",
            )
        )
    return actions


def escalation_recommendations(probability: float, factors: EscalationFactors) -> List[Recommendation]:
    recommendations = []
    if probability > 0.6:
        recommendations.append(
            Recommendation(
                category="resource",
                priority="high",
                action="Consider requesting mutual aid",
                reason="Escalation probability exceeds 60%",
            )
        )
    if factors.incident.hours_active > LONG_RUNNING_HOURS:
        recommendations.append(
            Recommendation(
                category="strategic",
                priority="medium",
                action="Evaluate incident command structure",
                reason="Long-duration incident may benefit from command structure review",
            )
        )
    recommendations.append(
        Recommendation(
            category="monitoring",
            priority="medium",
            action="Increase monitoring frequency",
            reason=f"Current escalation risk: {escalation_risk_level(probability)}",
        )
    )
    return recommendations
