from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from dispatch_intel.allocation import ResourceAllocator
from dispatch_intel.errors import ValidationError
from dispatch_intel.signals import SignalGatherer, SimulatedEnvironmentProvider, SimulatedWeatherProvider
from dispatch_intel.system import PredictiveService

from .config import (
    ALLOCATION_STRATEGY,
    GATHERER_TIMEOUT_SECONDS,
    HISTORY_LOOKBACK_DAYS,
    HISTORY_RADIUS_KM,
    LOG_LEVEL,
    NORMALIZE_MEDIA_SCORE,
    SIMULATION_SEED,
)
from .db import SqliteIncidentStore, init_db

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Dispatch Intelligence API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_service() -> PredictiveService:
    gatherer = SignalGatherer(
        incident_store=SqliteIncidentStore(),
        weather_provider=SimulatedWeatherProvider(SIMULATION_SEED),
        environment_provider=SimulatedEnvironmentProvider(SIMULATION_SEED),
        timeout=GATHERER_TIMEOUT_SECONDS,
        radius_km=HISTORY_RADIUS_KM,
        lookback_days=HISTORY_LOOKBACK_DAYS,
    )
    return PredictiveService(
        gatherer=gatherer,
        allocator=ResourceAllocator(ALLOCATION_STRATEGY),
        normalize_media_score=NORMALIZE_MEDIA_SCORE,
    )


service = build_service()


@app.on_event("startup")
def startup() -> None:
    init_db()
    logger.info("Dispatch intelligence API ready (allocation strategy: %s)", ALLOCATION_STRATEGY)


class LocationIn(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    timestamp: datetime | None = None


class TriageIn(BaseModel):
    description: str | None = None
    location: LocationIn | None = None
    media: List[str] = Field(default_factory=list)
    timestamp: datetime | None = None


class ResourceIn(BaseModel):
    id: str | int | None = None
    type: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    status: str | None = None
    experience_level: float | None = None


class EscalationIn(BaseModel):
    id: str | int | None = None
    type: str | None = None
    severity: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    assigned_resources: List[ResourceIn] = Field(default_factory=list)
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    response_time: float | None = None


class AllocationIncidentIn(BaseModel):
    id: str | int | None = None
    type: str | None = None
    priority: float | None = None
    risk_score: float | None = None
    latitude: float | None = None
    longitude: float | None = None


class AllocationIn(BaseModel):
    incidents: List[AllocationIncidentIn] = Field(default_factory=list)
    resources: List[ResourceIn] = Field(default_factory=list)


@app.post("/risk-assessment")
def risk_assessment(payload: LocationIn):
    return asdict(service.calculate_fire_risk_score(payload.model_dump(exclude_none=True)))


@app.post("/triage")
def triage(payload: TriageIn):
    try:
        result = service.perform_intelligent_triage(payload.model_dump(exclude_none=True))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return asdict(result)


@app.post("/escalation")
def escalation(payload: EscalationIn):
    return asdict(service.predict_incident_escalation(payload.model_dump(exclude_none=True)))


@app.post("/allocation")
def allocation(payload: AllocationIn):
    data = payload.model_dump(exclude_none=True)
    return asdict(service.optimize_resource_allocation(data["incidents"], data["resources"]))


@app.get("/health")
def health():
    return {"status": "ok"}
