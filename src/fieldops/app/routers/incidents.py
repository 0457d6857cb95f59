"""Incident API — list, inspect, create and burst-spawn incidents."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from fieldops.simulation.errors import DispatchError
from fieldops.simulation.types import IncidentCategory

from .deps import get_engine, to_http

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


class CreateIncident(BaseModel):
    category: IncidentCategory | None = None
    lat: float | None = Field(default=None, ge=-90.0, le=90.0)
    lng: float | None = Field(default=None, ge=-180.0, le=180.0)


class SpawnCluster(BaseModel):
    count: int = Field(default=5, ge=1, le=50)


@router.get("")
async def list_incidents(request: Request, active: bool = False):
    """All incidents in creation order, or only unresolved ones."""
    engine = get_engine(request)
    with engine.lock:
        items = engine.incidents.active() if active else engine.incidents.all()
        return [i.to_dict() for i in items]


@router.get("/history")
async def incident_history(request: Request):
    engine = get_engine(request)
    with engine.lock:
        return [h.model_dump(mode="json") for h in engine.incidents.history]


@router.get("/{incident_id}")
async def get_incident(incident_id: str, request: Request):
    engine = get_engine(request)
    with engine.lock:
        incident = engine.find_incident(incident_id)
        if incident is None:
            raise HTTPException(404, f"Incident {incident_id} not found")
        return incident.to_dict()


@router.post("", status_code=201)
async def create_incident(body: CreateIncident, request: Request):
    """Operator-created incident.  Category and location are optional."""
    engine = get_engine(request)
    try:
        incident = engine.create_incident(body.category, body.lat, body.lng)
    except DispatchError as e:
        raise to_http(e)
    return incident.to_dict()


@router.post("/cluster", status_code=201)
async def spawn_cluster(body: SpawnCluster, request: Request):
    engine = get_engine(request)
    incidents = engine.spawn_cluster(body.count)
    return [i.to_dict() for i in incidents]
