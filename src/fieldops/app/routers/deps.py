"""Shared request helpers for the routers."""

from __future__ import annotations

from fastapi import HTTPException, Request

from fieldops.simulation.errors import (
    DispatchError,
    InvalidStateError,
    NotFoundError,
    UnknownCategoryError,
)


def get_engine(request: Request):
    """Retrieve the DispatchEngine from app state."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(503, "Dispatch engine not available")
    return engine


def to_http(error: DispatchError) -> HTTPException:
    """Map an engine error onto an HTTP status."""
    if isinstance(error, NotFoundError):
        return HTTPException(404, str(error))
    if isinstance(error, InvalidStateError):
        return HTTPException(409, str(error))
    if isinstance(error, UnknownCategoryError):
        return HTTPException(422, str(error))
    return HTTPException(400, str(error))
