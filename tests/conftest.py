"""Shared fixtures: seeded engines around the Vellore territory center."""

from __future__ import annotations

import math
import random

import pytest

from fieldops.geo import EARTH_RADIUS_M
from fieldops.simulation import DispatchEngine, IncidentRegistry, Unit, UnitRegistry

CENTER_LAT = 12.9165
CENTER_LNG = 79.1325

# Degrees of latitude per meter on the haversine sphere
DEG_PER_M = 180.0 / (math.pi * EARTH_RADIUS_M)


def build_engine(seed: int = 7, fleet: int = 0, start: bool = True, **kwargs) -> DispatchEngine:
    rng = random.Random(seed)
    engine = DispatchEngine(
        CENTER_LAT,
        CENTER_LNG,
        incidents=IncidentRegistry(rng=rng),
        units=UnitRegistry(rng=rng),
        rng=kwargs.pop("engine_rng", rng),
        **kwargs,
    )
    if fleet:
        engine.initialize_fleet(fleet)
    if start:
        engine.start(initial_incidents=0)
    return engine


@pytest.fixture
def engine() -> DispatchEngine:
    """Running engine with no units and no incidents."""
    return build_engine()


@pytest.fixture
def fleet_engine() -> DispatchEngine:
    """Running engine with five units per category and no incidents."""
    return build_engine(fleet=5)


@pytest.fixture
def make_engine():
    return build_engine


@pytest.fixture
def add_unit():
    """Place a unit ``meters_north`` of the center."""
    def _add(engine: DispatchEngine, unit_id: str, category: str,
             meters_north: float = 0.0) -> Unit:
        return engine.units.add(Unit(
            id=unit_id,
            category=category,
            lat=CENTER_LAT + meters_north * DEG_PER_M,
            lng=CENTER_LNG,
        ))
    return _add
