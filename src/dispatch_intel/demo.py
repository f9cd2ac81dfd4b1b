from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from dispatch_intel.models import EnvironmentalSignal, IncidentRecord, Location, MediaAnalysis, WeatherSignal
from dispatch_intel.signals import (
    InMemoryIncidentStore,
    SignalGatherer,
    StaticEnvironmentProvider,
    StaticMediaAnalyzer,
    StaticWeatherProvider,
)
from dispatch_intel.system import PredictiveService


def build_demo_service(now: datetime) -> PredictiveService:
    history = [
        IncidentRecord(
            incident_id=f"HIST-{n}",
            location=Location(40.7570 + n * 0.001, -73.9860),
            created_at=now - timedelta(days=20 * n, hours=n),
            resolved_at=now - timedelta(days=20 * n, hours=n) + timedelta(minutes=6 + n),
        )
        for n in range(1, 8)
    ]
    gatherer = SignalGatherer(
        incident_store=InMemoryIncidentStore(history),
        weather_provider=StaticWeatherProvider(
            WeatherSignal(temperature=34.0, humidity=25.0, wind_speed=22.0, precipitation=0.0, drought_index=0.75)
        ),
        environment_provider=StaticEnvironmentProvider(
            EnvironmentalSignal(vegetation_dryness=0.8, air_quality=45.0, proximity_to_risk=0.6, building_density=0.7)
        ),
    )
    media = StaticMediaAnalyzer(
        MediaAnalysis(
            fire_detected=True,
            smoke_detected=True,
            structural_damage=False,
            people_detected=True,
            confidence=0.85,
        )
    )
    return PredictiveService(gatherer=gatherer, media_analyzer=media, clock=lambda: now)


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    now = datetime(2024, 7, 15, 14, 30, tzinfo=timezone.utc)
    service = build_demo_service(now)

    risk = service.calculate_fire_risk_score({"latitude": 40.7580, "longitude": -73.9855, "timestamp": now})
    triage = service.perform_intelligent_triage(
        {
            "description": "Large fire spreading, people trapped in building",
            "location": {"lat": 40.7580, "lng": -73.9855},
            "media": ["photo-1.jpg"],
            "timestamp": now,
        }
    )
    prediction = service.predict_incident_escalation(
        {
            "id": "INC-1001",
            "type": "fire",
            "severity": "high",
            "latitude": 40.7580,
            "longitude": -73.9855,
            "assigned_resources": [{"id": "E-1", "experience_level": 0.4}],
            "created_at": now - timedelta(minutes=50),
        }
    )
    plan = service.optimize_resource_allocation(
        incidents=[
            {"id": "INC-1001", "type": "fire", "priority": triage.priority_score, "risk_score": risk.risk_score,
             "latitude": 40.7580, "longitude": -73.9855},
            {"id": "INC-1002", "type": "medical", "priority": 0.5, "risk_score": 0.4,
             "latitude": 40.7306, "longitude": -73.9866},
        ],
        resources=[
            {"id": "ENGINE-7", "type": "fire_engine", "status": "available", "experience_level": 0.9,
             "latitude": 40.7610, "longitude": -73.9800},
            {"id": "MEDIC-12", "type": "ambulance", "status": "available",
             "latitude": 40.7290, "longitude": -73.9900},
            {"id": "LADDER-3", "type": "ladder_truck", "status": "standby",
             "latitude": 40.7480, "longitude": -73.9920},
        ],
    )

    print("=== Fire Risk ===")
    print(f"Score: {risk.risk_score:.3f} ({risk.risk_level})")
    for rec in risk.recommendations:
        print(f" - [{rec.priority}] {rec.action}: {rec.reason}")

    print("\n=== Triage ===")
    print(f"Priority: {triage.priority_score:.3f} ({triage.priority_level}), severity {triage.estimated_severity}")
    response = triage.response_recommendation
    print(f"Response: {response.response_type}, {response.recommended_units} unit(s), ETA {response.estimated_response_time}")

    print("\n=== Escalation ===")
    print(f"Probability: {prediction.probability:.3f} ({prediction.risk_level})")
    print(f"Time to escalation: {prediction.timeline.estimated_time_to_escalation:.0f} min")
    for action in prediction.prevention_actions:
        print(f" - [{action.priority}] {action.action}")

    print("\n=== Allocation ===")
    for assignment in plan.assignments:
        print(
            f" - {assignment.incident_id} <- {assignment.resource_id} "
            f"(ETA {assignment.estimated_response_time:.1f} min, confidence {assignment.confidence:.2f})"
        )
    print(f"Efficiency: {plan.efficiency:.3f}")
    for rec in plan.recommendations:
        print(f" - [{rec.priority}] {rec.reason}")


if __name__ == "__main__":
    main()
