import pytest

from dispatch_intel.allocation import (
    ResourceAllocator,
    allocation_efficiency,
    availability_score,
    capability_score,
    score_resource,
)
from dispatch_intel.models import AllocationIncident, Assignment, Location, Resource


def _incident(incident_id, priority=0.5, risk_score=0.5, incident_type="fire", lat=40.7580, lng=-73.9855) -> dict:
    return {
        "id": incident_id,
        "type": incident_type,
        "priority": priority,
        "risk_score": risk_score,
        "latitude": lat,
        "longitude": lng,
    }


def _resource(resource_id, resource_type="fire_engine", lat=40.7600, lng=-73.9855, status="available", experience=0.8) -> dict:
    return {
        "id": resource_id,
        "type": resource_type,
        "latitude": lat,
        "longitude": lng,
        "status": status,
        "experience_level": experience,
    }


def test_capability_table_and_default() -> None:
    assert capability_score("fire", "fire_engine") == 1.0
    assert capability_score("medical", "ambulance") == 1.0
    assert capability_score("rescue", "ladder_truck") == 0.9
    assert capability_score("hazmat", "hazmat_unit") == 1.0
    assert capability_score("fire", "hazmat_unit") == 0.5
    assert capability_score("flood", "fire_engine") == 0.5


def test_availability_scores() -> None:
    location = Location(0, 0)
    assigned = [Assignment(incident_id="i", resource_id="busy", estimated_response_time=3, confidence=1)]

    assert availability_score(Resource("busy", "fire_engine", location, "available"), assigned) == 0.2
    assert availability_score(Resource("a", "fire_engine", location, "available"), assigned) == 1.0
    assert availability_score(Resource("b", "fire_engine", location, "standby"), []) == 0.8
    assert availability_score(Resource("c", "fire_engine", location, "maintenance"), []) == 0.1
    assert availability_score(Resource("d", "fire_engine", location, None), []) == 0.6


def test_score_resource_at_incident_location() -> None:
    incident = AllocationIncident("i", "fire", Location(40.0, -74.0), 1.0, 1.0)
    resource = Resource("r", "fire_engine", Location(40.0, -74.0), "available", None)

    scored = score_resource(incident, resource)
    assert scored.total_score == pytest.approx(10 * 0.4 + 1.0 * 0.3 + 1.0 * 0.2 + 0.7 * 0.1)
    assert scored.estimated_response_time == 3
    assert scored.confidence == 1.0


def test_highest_weighted_incident_gets_the_only_resource() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("low", priority=0.5, risk_score=0.2), _incident("high", priority=1.0, risk_score=0.9)],
        [_resource("E-1")],
    )

    assert [(a.incident_id, a.resource_id) for a in plan.assignments] == [("high", "E-1")]
    assert plan.unassigned_incident_ids == ["low"]


def test_no_resource_is_booked_twice() -> None:
    incidents = [_incident(f"INC-{n}", priority=0.1 * n, risk_score=0.9) for n in range(1, 6)]
    resources = [
        _resource("E-1"),
        _resource("E-2", lat=40.7700),
        _resource("E-3", lat=40.7400),
        _resource("E-1", lat=40.7580),
    ]

    plan = ResourceAllocator().allocate(incidents, resources)
    resource_ids = [a.resource_id for a in plan.assignments]

    assert len(resource_ids) == 3
    assert len(set(resource_ids)) == len(resource_ids)
    assert len(set(a.incident_id for a in plan.assignments)) == 3


def test_capability_breaks_distance_tie() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("fire-1", incident_type="fire")],
        [_resource("MEDIC-1", resource_type="ambulance"), _resource("ENGINE-1", resource_type="fire_engine")],
    )
    assert plan.assignments[0].resource_id == "ENGINE-1"


def test_unassigned_critical_incident_triggers_mutual_aid() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("a", priority=0.9, risk_score=0.9), _incident("b", priority=0.85, risk_score=0.5)],
        [_resource("E-1")],
    )

    categories = [r.category for r in plan.recommendations]
    assert categories == ["critical", "capacity"]
    assert plan.recommendations[0].priority == "immediate"
    assert plan.recommendations[0].reason.startswith("1 critical incident(s)")


def test_low_utilization_suggests_preventive_patrols() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("a")],
        [_resource(f"E-{n}", lat=40.76 + n * 0.01) for n in range(5)],
    )
    assert [r.category for r in plan.recommendations] == ["efficiency"]


def test_empty_inputs_produce_empty_plan() -> None:
    plan = ResourceAllocator().allocate([], [])
    assert plan.assignments == []
    assert plan.efficiency == 0.0
    assert plan.recommendations == []


def test_efficiency_combines_confidence_and_speed() -> None:
    assignments = [
        Assignment("a", "r1", estimated_response_time=3, confidence=1.0),
        Assignment("b", "r2", estimated_response_time=10, confidence=0.5),
    ]
    expected = ((1.0 + 0.5) / 2) * 0.6 + ((1 / 3 + 1 / 10) / 2) * 0.4
    assert allocation_efficiency(assignments) == pytest.approx(expected)


def test_optimal_strategy_improves_on_greedy_matching() -> None:
    incidents = [
        _incident("A", priority=1.0, risk_score=1.0, lat=0.0, lng=0.0),
        _incident("B", priority=0.5, risk_score=1.0, lat=0.0, lng=0.01),
    ]
    resources = [_resource("R1", lat=0.0, lng=0.004), _resource("R2", lat=0.0, lng=-0.005)]

    greedy = ResourceAllocator("greedy").allocate(incidents, resources)
    optimal = ResourceAllocator("optimal").allocate(incidents, resources)

    assert {a.incident_id: a.resource_id for a in greedy.assignments} == {"A": "R1", "B": "R2"}
    assert {a.incident_id: a.resource_id for a in optimal.assignments} == {"A": "R2", "B": "R1"}
    assert optimal.strategy == "optimal"
    assert optimal.efficiency > greedy.efficiency


def test_optimal_strategy_serves_highest_priority_first() -> None:
    plan = ResourceAllocator("optimal").allocate(
        [_incident("low", priority=0.1), _incident("top", priority=1.0), _incident("mid", priority=0.5)],
        [_resource("E-1")],
    )
    assert [a.incident_id for a in plan.assignments] == ["top"]
    assert plan.unassigned_incident_ids == ["mid", "low"]


def test_unknown_strategy_is_rejected() -> None:
    with pytest.raises(ValueError):
        ResourceAllocator("random")


def test_resources_without_ids_are_booked_once_each() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("I1", priority=0.9), _incident("I2", priority=0.6)],
        [{"type": "fire_engine"}, {"type": "fire_engine"}],
    )

    resource_ids = [a.resource_id for a in plan.assignments]
    assert len(resource_ids) == 2
    assert None not in resource_ids
    assert len(set(resource_ids)) == 2


def test_id_less_resource_keys_do_not_clash_with_given_ids() -> None:
    plan = ResourceAllocator().allocate(
        [_incident("I1", priority=0.9), _incident("I2", priority=0.6)],
        [{"id": "resource-1", "type": "fire_engine"}, {"type": "fire_engine"}],
    )
    assert len(set(a.resource_id for a in plan.assignments)) == 2


def test_incidents_without_ids_are_tracked_separately() -> None:
    plan = ResourceAllocator().allocate(
        [
            {"type": "fire", "priority": 0.9, "risk_score": 0.9},
            {"type": "fire", "priority": 0.85, "risk_score": 0.5},
        ],
        [_resource("E-1")],
    )

    assert len(plan.assignments) == 1
    assert len(plan.unassigned_incident_ids) == 1
    assert plan.unassigned_incident_ids[0] != plan.assignments[0].incident_id
    assert plan.recommendations[0].reason.startswith("1 critical incident(s)")


def test_optimal_strategy_handles_resources_without_ids() -> None:
    plan = ResourceAllocator("optimal").allocate(
        [_incident("I1", priority=0.9), _incident("I2", priority=0.6)],
        [{"type": "fire_engine"}, {"type": "ambulance"}],
    )
    assert len(set(a.resource_id for a in plan.assignments)) == 2
