"""Unit API — fleet listing, status override and manual dispatch."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from fieldops.simulation.errors import DispatchError
from fieldops.simulation.types import UnitCategory, UnitStatus

from .deps import get_engine, to_http

router = APIRouter(prefix="/api", tags=["units"])


class StatusOverride(BaseModel):
    status: UnitStatus


class DispatchRequest(BaseModel):
    unit_id: str
    incident_id: str


@router.get("/units")
async def list_units(
    request: Request,
    status: UnitStatus | None = None,
    category: UnitCategory | None = None,
):
    engine = get_engine(request)
    with engine.lock:
        return [
            u.to_dict() for u in engine.units
            if (status is None or u.status is status)
            and (category is None or u.category is category)
        ]


@router.get("/units/{unit_id}")
async def get_unit(unit_id: str, request: Request):
    engine = get_engine(request)
    with engine.lock:
        unit = engine.find_unit(unit_id)
        if unit is None:
            raise HTTPException(404, f"Unit {unit_id} not found")
        return unit.to_dict()


@router.post("/units/{unit_id}/status")
async def set_unit_status(unit_id: str, body: StatusOverride, request: Request):
    """Force a unit's status (available, busy or out-of-service)."""
    engine = get_engine(request)
    try:
        unit = engine.set_unit_status(unit_id, body.status)
    except DispatchError as e:
        raise to_http(e)
    return unit.to_dict()


@router.post("/dispatch")
async def dispatch_unit(body: DispatchRequest, request: Request):
    """Send a specific available unit to a specific incident."""
    engine = get_engine(request)
    try:
        unit = engine.manual_dispatch(body.unit_id, body.incident_id)
    except DispatchError as e:
        raise to_http(e)
    return {"unit_id": unit.id, "incident_id": unit.target_incident_id, "status": unit.status.value}
