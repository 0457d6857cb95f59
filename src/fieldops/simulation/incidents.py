"""IncidentRegistry — owns every incident, its severity dynamics and history.

Severity model (per tick of ``delta_ms`` milliseconds):

  unassigned, growth_rate > 0:  severity = min(10, severity + growth * delta)
  k units assigned:             severity -= k * 0.002 * delta
                                resolve the first tick severity <= 0

Incidents are never deleted.  A resolved incident keeps its record, drops
out of ``active()`` and gets one entry in the bounded history.

The registry knows nothing about units: ``assigned_units`` holds unit ids
that the dispatch engine maintains.
"""

from __future__ import annotations

import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator

from fieldops.geo import random_point_within_radius

from .snapshot import (
    ActiveIncidentRecord,
    HistoryRecord,
    IncidentSnapshot,
    incident_number,
)
from .types import GROWTH_RATES, IncidentCategory

logger = logging.getLogger("fieldops.incidents")


@dataclass
class Incident:
    """A single emergency on the territory."""

    id: str
    category: IncidentCategory
    lat: float
    lng: float
    severity: float
    created_at: float
    growth_rate: float | None = None  # derived from category when omitted
    resolved_at: float | None = None
    assigned_units: list[str] = field(default_factory=list)
    initial_severity: float = field(init=False)

    def __post_init__(self) -> None:
        self.category = IncidentCategory(self.category)
        self.severity = float(self.severity)
        if self.growth_rate is None:
            self.growth_rate = GROWTH_RATES[self.category]
        self.initial_severity = self.severity

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "lat": self.lat,
            "lng": self.lng,
            "severity": self.severity,
            "initial_severity": self.initial_severity,
            "growth_rate": self.growth_rate,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "resolved": self.resolved,
            "assigned_units": list(self.assigned_units),
        }


class IncidentRegistry:
    """Insertion-ordered incident store keyed by ``INC-<n>`` ids."""

    SPAWN_RADIUS_M = 20_000.0
    MANUAL_SEVERITY = 3.0
    MAX_SEVERITY = 10.0
    RESPONSE_RATE = 0.002  # severity per ms per assigned unit
    HISTORY_LIMIT = 50

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        history_limit: int | None = None,
        spawn_radius_m: float | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        if spawn_radius_m is not None:
            self.SPAWN_RADIUS_M = spawn_radius_m
        self._clock = clock
        self._incidents: dict[str, Incident] = {}
        self._counter = 1
        self._history: deque[HistoryRecord] = deque(
            maxlen=history_limit or self.HISTORY_LIMIT,
        )

    # -- Lookup -------------------------------------------------------------

    def __iter__(self) -> Iterator[Incident]:
        return iter(list(self._incidents.values()))

    def __len__(self) -> int:
        return len(self._incidents)

    def get(self, incident_id: str) -> Incident | None:
        return self._incidents.get(incident_id)

    def all(self) -> list[Incident]:
        return list(self._incidents.values())

    def active(self) -> list[Incident]:
        return [i for i in self._incidents.values() if not i.resolved]

    @property
    def active_count(self) -> int:
        return sum(1 for i in self._incidents.values() if not i.resolved)

    @property
    def history(self) -> list[HistoryRecord]:
        return list(self._history)

    @property
    def next_number(self) -> int:
        return self._counter

    # -- Creation -----------------------------------------------------------

    def _next_id(self) -> str:
        incident_id = f"INC-{self._counter}"
        self._counter += 1
        return incident_id

    def _add(self, incident: Incident) -> Incident:
        self._incidents[incident.id] = incident
        return incident

    def random_category(self) -> IncidentCategory:
        return self._rng.choice(list(IncidentCategory))

    def spawn_random(self, center_lat: float, center_lng: float) -> Incident:
        """Create an incident with random category, severity 1-5 and position."""
        category = self.random_category()
        severity = self._rng.randint(1, 5)
        lat, lng = random_point_within_radius(
            center_lat, center_lng, self.SPAWN_RADIUS_M, rng=self._rng,
        )
        incident = self._add(Incident(
            id=self._next_id(),
            category=category,
            lat=lat,
            lng=lng,
            severity=severity,
            created_at=self._clock(),
        ))
        logger.info(
            f"Spawned {incident.id}: {category.value} "
            f"(severity {severity}) at {lat:.4f},{lng:.4f}"
        )
        return incident

    def create_manual(
        self, category: IncidentCategory | str, lat: float, lng: float,
    ) -> Incident:
        """Create an operator-requested incident at a fixed starting severity."""
        incident = self._add(Incident(
            id=self._next_id(),
            category=IncidentCategory(category),
            lat=lat,
            lng=lng,
            severity=self.MANUAL_SEVERITY,
            created_at=self._clock(),
        ))
        logger.info(f"Created {incident.id}: {incident.category.value} (manual)")
        return incident

    # -- Dynamics -----------------------------------------------------------

    def tick(self, delta_ms: float) -> list[Incident]:
        """Advance severity for every unresolved incident.

        Returns the incidents that resolved during this tick.
        """
        resolved: list[Incident] = []
        for incident in self._incidents.values():
            if incident.resolved:
                continue

            assigned = len(incident.assigned_units)
            if assigned == 0:
                if incident.growth_rate > 0:
                    incident.severity = min(
                        self.MAX_SEVERITY,
                        incident.severity + incident.growth_rate * delta_ms,
                    )
                continue

            incident.severity -= assigned * self.RESPONSE_RATE * delta_ms
            if incident.severity <= 0 and self.resolve(incident):
                resolved.append(incident)
        return resolved

    def resolve(self, incident: Incident) -> bool:
        """Mark an incident resolved.  Returns False if it already was."""
        if incident.resolved:
            return False
        incident.severity = 0.0
        incident.resolved_at = self._clock()
        self._history.append(HistoryRecord(
            id=incident.id,
            category=incident.category,
            created_at=incident.created_at,
            resolved_at=incident.resolved_at,
            severity=incident.initial_severity,
        ))
        logger.info(f"{incident.id} resolved")
        return True

    # -- Snapshot -----------------------------------------------------------

    def snapshot(self) -> IncidentSnapshot:
        return IncidentSnapshot(
            active_incidents=[
                ActiveIncidentRecord(
                    id=i.id,
                    category=i.category,
                    lat=i.lat,
                    lng=i.lng,
                    severity=max(0.0, min(self.MAX_SEVERITY, i.severity)),
                    growth_rate=i.growth_rate,
                    created_at=i.created_at,
                )
                for i in self.active()
            ],
            incident_history=list(self._history),
        )

    def restore(self, snapshot: IncidentSnapshot) -> int:
        """Load active incidents and history from a validated snapshot.

        Ids already present are skipped.  The id counter moves past every
        numeric suffix seen so restored ids are never handed out again.
        Returns the number of incidents added.
        """
        restored = 0
        highest = self._counter - 1
        for rec in snapshot.active_incidents:
            highest = max(highest, incident_number(rec.id))
            if rec.id in self._incidents:
                continue
            self._add(Incident(
                id=rec.id,
                category=rec.category,
                lat=rec.lat,
                lng=rec.lng,
                severity=rec.severity,
                created_at=rec.created_at,
                growth_rate=rec.growth_rate,
            ))
            restored += 1

        known = {h.id for h in self._history}
        for rec in snapshot.incident_history:
            highest = max(highest, incident_number(rec.id))
            if rec.id not in known:
                self._history.append(rec)

        self._counter = highest + 1
        if restored:
            logger.info(f"Restored {restored} active incidents")
        return restored
