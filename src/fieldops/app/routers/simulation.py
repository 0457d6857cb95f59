"""Simulation control API — status, chaos toggle, operator log, commands."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from fieldops.commands import CommandParser

from .deps import get_engine

router = APIRouter(prefix="/api", tags=["simulation"])


class CommandText(BaseModel):
    text: str = Field(min_length=1, max_length=200)


@router.get("/status")
async def get_status(request: Request):
    """Counts and flags for the dashboard header."""
    return get_engine(request).get_state()


@router.post("/simulation/chaos")
async def toggle_chaos(request: Request):
    engine = get_engine(request)
    return {"chaos": engine.toggle_chaos()}


@router.get("/log")
async def operator_log(request: Request, limit: int | None = None):
    engine = get_engine(request)
    return [e.to_dict() for e in engine.operator_log.entries(limit)]


@router.post("/commands")
async def run_command(body: CommandText, request: Request):
    """Execute a free-text operator command."""
    engine = get_engine(request)
    return CommandParser(engine).execute(body.text).to_dict()
