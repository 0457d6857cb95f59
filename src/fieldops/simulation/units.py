"""UnitRegistry — the responder fleet, its movement and availability.

Movement is a straight line in degree space.  Each tick an en-route unit
closes ``speed`` degrees of the remaining gap (independent of delta_ms);
once inside ARRIVAL_THRESHOLD it snaps onto the target and goes busy.

The registry never looks at incidents.  Dispatch and release are driven by
the engine through ``Unit.dispatch_to`` / ``Unit.release``.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Iterator, Mapping

from fieldops.geo import random_point_within_radius

from .types import UNIT_PREFIXES, UNIT_SPEEDS, UnitCategory, UnitStatus

logger = logging.getLogger("fieldops.units")


@dataclass
class Unit:
    """A single responder resource."""

    id: str
    category: UnitCategory
    lat: float
    lng: float
    status: UnitStatus = UnitStatus.AVAILABLE
    target_incident_id: str | None = None
    target_lat: float | None = None
    target_lng: float | None = None
    speed: float | None = None  # degrees per tick, derived from category
    fuel: float = 100.0
    fatigue: float = 0.0
    supplies: float = 100.0

    def __post_init__(self) -> None:
        self.category = UnitCategory(self.category)
        self.status = UnitStatus(self.status)
        if self.speed is None:
            self.speed = UNIT_SPEEDS[self.category]

    @property
    def has_target(self) -> bool:
        return self.target_lat is not None and self.target_lng is not None

    def dispatch_to(self, incident_id: str, lat: float, lng: float) -> None:
        self.status = UnitStatus.EN_ROUTE
        self.target_incident_id = incident_id
        self.target_lat = lat
        self.target_lng = lng

    def release(self, status: UnitStatus = UnitStatus.AVAILABLE) -> None:
        self.status = status
        self.target_incident_id = None
        self.target_lat = None
        self.target_lng = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "lat": self.lat,
            "lng": self.lng,
            "status": self.status.value,
            "target_incident_id": self.target_incident_id,
            "target_lat": self.target_lat,
            "target_lng": self.target_lng,
            "speed": self.speed,
            "fuel": self.fuel,
            "fatigue": self.fatigue,
            "supplies": self.supplies,
        }


ReadinessPolicy = Callable[[Unit], bool]

MIN_FUEL = 10.0


def minimum_fuel(unit: Unit) -> bool:
    """Default readiness gate.

    Fuel does not drain in the current model, so every unit passes.  Swap
    the policy to model resource exhaustion.
    """
    return unit.fuel > MIN_FUEL


class UnitRegistry:
    """Insertion-ordered unit store keyed by ``<PREFIX>-<n>`` ids."""

    FLEET_RADIUS_M = 15_000.0
    DEFAULT_FLEET_SIZE = 5
    ARRIVAL_THRESHOLD = 0.0005  # degrees, roughly 50 m

    def __init__(
        self,
        rng: random.Random | None = None,
        readiness: ReadinessPolicy | None = None,
        fleet_radius_m: float | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._readiness: ReadinessPolicy = readiness or minimum_fuel
        if fleet_radius_m is not None:
            self.FLEET_RADIUS_M = fleet_radius_m
        self._units: dict[str, Unit] = {}

    def __iter__(self) -> Iterator[Unit]:
        return iter(list(self._units.values()))

    def __len__(self) -> int:
        return len(self._units)

    def add(self, unit: Unit) -> Unit:
        self._units[unit.id] = unit
        return unit

    def get(self, unit_id: str) -> Unit | None:
        return self._units.get(unit_id)

    def all(self) -> list[Unit]:
        return list(self._units.values())

    def initialize_fleet(
        self,
        center_lat: float,
        center_lng: float,
        counts: Mapping[UnitCategory, int] | int | None = None,
    ) -> list[Unit]:
        """Create the fleet scattered within FLEET_RADIUS_M of the center.

        ``counts`` is either one count for every category or a per-category
        mapping; categories missing from the mapping get no units.
        """
        if counts is None:
            counts = self.DEFAULT_FLEET_SIZE
        if isinstance(counts, int):
            counts = {category: counts for category in UnitCategory}

        created: list[Unit] = []
        for category in UnitCategory:
            prefix = UNIT_PREFIXES[category]
            existing = sum(1 for u in self._units.values() if u.category is category)
            for n in range(existing + 1, existing + counts.get(category, 0) + 1):
                lat, lng = random_point_within_radius(
                    center_lat, center_lng, self.FLEET_RADIUS_M, rng=self._rng,
                )
                created.append(self.add(Unit(
                    id=f"{prefix}-{n}", category=category, lat=lat, lng=lng,
                )))
        logger.info(f"Fleet initialized: {len(created)} units")
        return created

    # -- Availability -------------------------------------------------------

    def is_ready(self, unit: Unit) -> bool:
        """Readiness gate applied on top of status by ``available()``."""
        return self._readiness(unit)

    def available(self, category: UnitCategory | str | None = None) -> list[Unit]:
        if category is not None:
            category = UnitCategory(category)
        return [
            u for u in self._units.values()
            if u.status is UnitStatus.AVAILABLE
            and (category is None or u.category is category)
            and self.is_ready(u)
        ]

    @property
    def available_count(self) -> int:
        return len(self.available())

    # -- Movement -----------------------------------------------------------

    def tick(self, delta_ms: float) -> list[Unit]:
        """Move every en-route unit one step.  Returns units that arrived."""
        arrived: list[Unit] = []
        for unit in self._units.values():
            if unit.status is UnitStatus.OUT_OF_SERVICE:
                continue
            if unit.status is UnitStatus.EN_ROUTE and unit.has_target:
                if self._move(unit):
                    arrived.append(unit)
        return arrived

    def _move(self, unit: Unit) -> bool:
        d_lat = unit.target_lat - unit.lat
        d_lng = unit.target_lng - unit.lng
        dist = math.hypot(d_lat, d_lng)

        if dist < self.ARRIVAL_THRESHOLD:
            unit.lat = unit.target_lat
            unit.lng = unit.target_lng
            unit.status = UnitStatus.BUSY
            # Target coordinates are only meaningful while en-route
            unit.target_lat = None
            unit.target_lng = None
            logger.info(f"{unit.id} arrived at {unit.target_incident_id}")
            return True

        ratio = unit.speed / dist
        unit.lat += d_lat * ratio
        unit.lng += d_lng * ratio
        return False
