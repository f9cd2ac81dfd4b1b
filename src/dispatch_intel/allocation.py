from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from dispatch_intel.intelligence import haversine_km
from dispatch_intel.models import AllocationIncident, AllocationPlan, Assignment, Recommendation, Resource
from dispatch_intel.recommend import by_priority

logger = logging.getLogger(__name__)

CAPABILITY_SCORES = {
    "fire": {"fire_engine": 1.0, "ladder_truck": 0.9, "rescue_unit": 0.7, "ambulance": 0.3},
    "medical": {"ambulance": 1.0, "rescue_unit": 0.8, "fire_engine": 0.6, "ladder_truck": 0.4},
    "rescue": {"rescue_unit": 1.0, "ladder_truck": 0.9, "fire_engine": 0.7, "ambulance": 0.6},
    "hazmat": {"hazmat_unit": 1.0, "rescue_unit": 0.8, "fire_engine": 0.5, "ambulance": 0.3},
}
DEFAULT_CAPABILITY = 0.5

AVAILABILITY_SCORES = {"available": 1.0, "standby": 0.8, "maintenance": 0.1}
DEFAULT_AVAILABILITY = 0.6
ALREADY_ASSIGNED_AVAILABILITY = 0.2
DEFAULT_EXPERIENCE = 0.7

MIN_DISTANCE_KM = 0.1
MINUTES_PER_KM = 2
MIN_RESPONSE_MINUTES = 3
CRITICAL_PRIORITY = 0.8

STRATEGIES = ("greedy", "optimal")


@dataclass(frozen=True)
class ScoredResource:
    resource: Resource
    distance_km: float
    total_score: float
    estimated_response_time: float
    confidence: float


def capability_score(incident_type: str, resource_type: str) -> float:
    return CAPABILITY_SCORES.get(incident_type, {}).get(resource_type, DEFAULT_CAPABILITY)


def availability_score(resource: Resource, assignments: Sequence[Assignment]) -> float:
    if any(a.resource_id == resource.resource_id for a in assignments):
        return ALREADY_ASSIGNED_AVAILABILITY
    return AVAILABILITY_SCORES.get(resource.status, DEFAULT_AVAILABILITY)


def score_resource(
    incident: AllocationIncident, resource: Resource, assignments: Sequence[Assignment] = ()
) -> ScoredResource:
    distance = haversine_km(incident.location, resource.location)
    experience = resource.experience_level if resource.experience_level is not None else DEFAULT_EXPERIENCE
    total = (
        (1 / max(distance, MIN_DISTANCE_KM)) * 0.4
        + capability_score(incident.incident_type, resource.resource_type) * 0.3
        + availability_score(resource, assignments) * 0.2
        + experience * 0.1
    )
    return ScoredResource(
        resource=resource,
        distance_km=distance,
        total_score=total,
        estimated_response_time=max(distance * MINUTES_PER_KM, MIN_RESPONSE_MINUTES),
        confidence=min(total / 2, 1.0),
    )


def find_optimal_resource(
    incident: AllocationIncident, resources: Sequence[Resource], assignments: Sequence[Assignment]
) -> Optional[ScoredResource]:
    best: Optional[ScoredResource] = None
    for resource in resources:
        scored = score_resource(incident, resource, assignments)
        if best is None or scored.total_score > best.total_score:
            best = scored
    return best


def allocation_efficiency(assignments: Sequence[Assignment]) -> float:
    if not assignments:
        return 0.0
    mean_confidence = sum(a.confidence for a in assignments) / len(assignments)
    mean_speed = sum(1 / max(a.estimated_response_time, 1) for a in assignments) / len(assignments)
    return mean_confidence * 0.6 + mean_speed * 0.4


def strategic_recommendations(
    assignments: Sequence[Assignment],
    incidents: Sequence[AllocationIncident],
    remaining: Sequence[Resource],
) -> List[Recommendation]:
    recommendations = []
    assigned_ids = {a.incident_id for a in assignments}

    unassigned_critical = [
        i for i in incidents if i.priority >= CRITICAL_PRIORITY and i.incident_id not in assigned_ids
    ]
    if unassigned_critical:
        recommendations.append(
            Recommendation(
                category="critical",
                priority="immediate",
                action="Consider reallocating resources or requesting mutual aid",
                reason=f"{len(unassigned_critical)} critical incident(s) require immediate attention",
            )
        )

    pool_size = len(assignments) + len(remaining)
    if pool_size:
        utilization = len(assignments) / pool_size
        if utilization > 0.8:
            recommendations.append(
                Recommendation(
                    category="capacity",
                    priority="high",
                    action="Consider requesting additional resources from neighboring stations",
                    reason="High resource utilization detected",
                )
            )
        elif utilization < 0.3:
            recommendations.append(
                Recommendation(
                    category="efficiency",
                    priority="medium",
                    action="Deploy idle resources for preventive monitoring in high-risk areas",
                    reason="Low resource utilization - resources available for preventive patrols",
                )
            )

    return by_priority(recommendations)


def _to_assignment(incident: AllocationIncident, scored: ScoredResource) -> Assignment:
    return Assignment(
        incident_id=incident.incident_id,
        resource_id=scored.resource.resource_id,
        estimated_response_time=scored.estimated_response_time,
        confidence=scored.confidence,
    )


def _fill_missing_ids(items: List[Any], attr: str, prefix: str) -> List[Any]:
    """Give id-less items a positional key such as ``resource-2``."""
    taken = {getattr(item, attr) for item in items if getattr(item, attr) is not None}
    filled = []
    for index, item in enumerate(items):
        if getattr(item, attr) is None:
            key = f"{prefix}-{index}"
            while key in taken:
                key = f"{key}'"
            taken.add(key)
            item = replace(item, **{attr: key})
        filled.append(item)
    return filled


def _unique_resources(resources: Iterable[Resource]) -> List[Resource]:
    pool: List[Resource] = []
    seen = set()
    for resource in _fill_missing_ids(list(resources), "resource_id", "resource"):
        if resource.resource_id in seen:
            logger.warning("Ignoring duplicate resource id %s", resource.resource_id)
            continue
        seen.add(resource.resource_id)
        pool.append(resource)
    return pool


class ResourceAllocator:
    def __init__(self, strategy: str = "greedy") -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown allocation strategy {strategy!r}; expected one of {STRATEGIES}")
        self.strategy = strategy

    def allocate(
        self,
        incidents: Iterable[Mapping[str, Any] | AllocationIncident],
        resources: Iterable[Mapping[str, Any] | Resource],
    ) -> AllocationPlan:
        parsed_incidents = _fill_missing_ids(
            [i if isinstance(i, AllocationIncident) else AllocationIncident.from_mapping(i) for i in incidents],
            "incident_id",
            "incident",
        )
        pool = _unique_resources(r if isinstance(r, Resource) else Resource.from_mapping(r) for r in resources)
        ordered = sorted(parsed_incidents, key=lambda i: i.weight, reverse=True)

        strategy = self.strategy
        if strategy == "optimal":
            try:
                assignments, remaining = self._allocate_optimal(ordered, pool)
            except (ValueError, np.linalg.LinAlgError):
                logger.warning("Optimal allocation failed. Falling back to greedy allocation.", exc_info=True)
                strategy = "greedy"
        if strategy == "greedy":
            assignments, remaining = self._allocate_greedy(ordered, pool)

        assigned_ids = {a.incident_id for a in assignments}
        unassigned = [i.incident_id for i in ordered if i.incident_id not in assigned_ids]
        plan = AllocationPlan(
            assignments=assignments,
            efficiency=allocation_efficiency(assignments),
            recommendations=strategic_recommendations(assignments, parsed_incidents, remaining),
            unassigned_incident_ids=unassigned,
            strategy=strategy,
        )
        logger.info(
            "Allocated %d/%d incidents with %d resources (%s, efficiency %.3f)",
            len(assignments),
            len(parsed_incidents),
            len(pool),
            strategy,
            plan.efficiency,
        )
        return plan

    @staticmethod
    def _allocate_greedy(
        ordered: Sequence[AllocationIncident], pool: Sequence[Resource]
    ) -> Tuple[List[Assignment], List[Resource]]:
        assignments: List[Assignment] = []
        remaining = list(pool)
        for incident in ordered:
            best = find_optimal_resource(incident, remaining, assignments)
            if best is None:
                logger.debug("No resource left for incident %s", incident.incident_id)
                continue
            assignments.append(_to_assignment(incident, best))
            remaining = [r for r in remaining if r is not best.resource]
        return assignments, remaining

    @staticmethod
    def _allocate_optimal(
        ordered: Sequence[AllocationIncident], pool: Sequence[Resource]
    ) -> Tuple[List[Assignment], List[Resource]]:
        served = list(ordered[: len(pool)])
        if not served:
            return [], list(pool)

        scored = [[score_resource(incident, resource) for resource in pool] for incident in served]
        matrix = np.array([[s.total_score for s in row] for row in scored])
        rows, cols = linear_sum_assignment(matrix, maximize=True)
        picks = dict(zip(rows.tolist(), cols.tolist()))

        assignments = [_to_assignment(served[r], scored[r][picks[r]]) for r in range(len(served)) if r in picks]
        used = set(picks.values())
        remaining = [resource for idx, resource in enumerate(pool) if idx not in used]
        return assignments, remaining
