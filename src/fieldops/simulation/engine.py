"""DispatchEngine — the fixed-order step that drives incidents and units.

Architecture
------------
The engine owns both registries and is the only code that knows about
both.  The registries never reference each other; the assignment link
between a unit and an incident is maintained here:

  - ``Incident.assigned_units`` is the authoritative list of unit ids.
  - ``Unit.target_incident_id`` is a non-owning back reference.

``assign()`` is the single place that creates a link, ``_release()`` and
``_detach()`` the only places that remove one.

Tick order (``tick(delta_ms)``):
  1. spawn timer — maybe spawn a random incident and auto-dispatch to it
  2. incidents.tick — severity growth / response decay / resolution
  3. release units of incidents that resolved in step 2
  4. retry matching for active incidents nobody is working
  5. units.tick — movement and arrival

Deltas that are negative or above ``max_delta_ms`` (a suspended host) are
dropped whole.  All public operations hold one re-entrant lock so a
threaded host loop can share the engine with an API layer.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Any

from fieldops.comms.event_bus import EventBus
from fieldops.comms.operator_log import OperatorLog
from fieldops.geo import distance, random_point_within_radius

from .errors import (
    IncidentNotFoundError,
    InvalidStateError,
    SnapshotError,
    UnitNotFoundError,
    UnknownCategoryError,
)
from .incidents import Incident, IncidentRegistry
from .snapshot import IncidentSnapshot
from .types import (
    OVERRIDE_STATUSES,
    REQUIRED_UNIT,
    UNIT_PREFIXES,
    IncidentCategory,
    UnitStatus,
)
from .units import Unit, UnitRegistry

logger = logging.getLogger("fieldops.engine")


class DispatchEngine:
    """Steps the incident and unit registries and matches units to incidents."""

    MAX_DELTA_MS = 1000.0

    # (threshold ms, spawn probability)
    EMPTY_SPAWN = (1000.0, 1.0)
    CHAOS_SPAWN = (500.0, 0.8)
    NORMAL_SPAWN = (3000.0, 0.6)

    INITIAL_INCIDENTS = 3
    CLUSTER_SIZE = 5

    def __init__(
        self,
        center_lat: float,
        center_lng: float,
        incidents: IncidentRegistry | None = None,
        units: UnitRegistry | None = None,
        event_bus: EventBus | None = None,
        operator_log: OperatorLog | None = None,
        rng: random.Random | None = None,
        max_delta_ms: float | None = None,
        chaos: bool = False,
    ) -> None:
        self.center_lat = center_lat
        self.center_lng = center_lng
        self._rng = rng or random.Random()
        self._incidents = incidents if incidents is not None else IncidentRegistry(rng=self._rng)
        self._units = units if units is not None else UnitRegistry(rng=self._rng)
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._log = operator_log if operator_log is not None else OperatorLog()
        self._lock = threading.RLock()

        if max_delta_ms is not None:
            self.MAX_DELTA_MS = max_delta_ms

        self._running = False
        self._chaos = chaos
        self._spawn_timer = 0.0
        self._tick_count = 0

    # -- Read access --------------------------------------------------------

    @property
    def incidents(self) -> IncidentRegistry:
        return self._incidents

    @property
    def units(self) -> UnitRegistry:
        return self._units

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def operator_log(self) -> OperatorLog:
        return self._log

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def running(self) -> bool:
        return self._running

    @property
    def chaos(self) -> bool:
        return self._chaos

    @property
    def spawn_timer(self) -> float:
        return self._spawn_timer

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def active_incident_count(self) -> int:
        return self._incidents.active_count

    @property
    def available_unit_count(self) -> int:
        return self._units.available_count

    def get_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "running": self._running,
                "chaos": self._chaos,
                "tick_count": self._tick_count,
                "active_incidents": self.active_incident_count,
                "total_incidents": len(self._incidents),
                "available_units": self.available_unit_count,
                "total_units": len(self._units),
            }

    # -- Lifecycle ----------------------------------------------------------

    def initialize_fleet(self, counts=None) -> list[Unit]:
        with self._lock:
            return self._units.initialize_fleet(self.center_lat, self.center_lng, counts)

    def start(self, initial_incidents: int | None = None) -> None:
        """Start accepting ticks and seed the board with random incidents."""
        with self._lock:
            if self._running:
                return
            self._running = True
            if initial_incidents is None:
                initial_incidents = self.INITIAL_INCIDENTS
            if initial_incidents:
                self._report("SYSTEM", "Initializing Simulation... Spawning initial incidents.")
            for _ in range(initial_incidents):
                self._spawn()
            self._report("SYSTEM", "Simulation Started.")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._report("SYSTEM", "Simulation Stopped.")

    # -- Tick ---------------------------------------------------------------

    def tick(self, delta_ms: float) -> bool:
        """Advance the simulation by ``delta_ms``.  Returns False if skipped."""
        with self._lock:
            if not self._running:
                return False
            if delta_ms < 0 or delta_ms > self.MAX_DELTA_MS:
                logger.debug(f"Discarding out-of-range delta {delta_ms:.1f} ms")
                return False

            self._tick_spawner(delta_ms)

            for incident in self._incidents.tick(delta_ms):
                self._release(incident)

            self._retry_unassigned()

            for unit in self._units.tick(delta_ms):
                self._report("UNIT", f"{unit.id} arrived at incident {unit.target_incident_id}.")
                self._event_bus.publish("unit_arrived", unit.to_dict())

            self._tick_count += 1
            return True

    def spawn_policy(self) -> tuple[float, float]:
        """Current (threshold ms, probability) for the spawn roll."""
        if self._incidents.active_count == 0:
            return self.EMPTY_SPAWN
        if self._chaos:
            return self.CHAOS_SPAWN
        return self.NORMAL_SPAWN

    def _tick_spawner(self, delta_ms: float) -> None:
        self._spawn_timer += delta_ms
        threshold, chance = self.spawn_policy()
        if self._spawn_timer > threshold:
            if self._rng.random() < chance:
                self._spawn()
            self._spawn_timer = 0.0

    def _spawn(self) -> Incident:
        incident = self._incidents.spawn_random(self.center_lat, self.center_lng)
        sector = int(incident.lat * 100) % 100
        self._report(
            "SYSTEM",
            f"New Incident: {incident.category.value.upper()} "
            f"(Sev: {incident.severity:g}) at Sector {sector}",
        )
        self._event_bus.publish("incident_spawned", incident.to_dict())
        self.auto_dispatch(incident)
        return incident

    # -- Matching -----------------------------------------------------------

    def nearest_available(self, incident: Incident) -> Unit | None:
        """Closest ready unit of the category the incident requires.

        Ties go to the unit registered first.
        """
        required = REQUIRED_UNIT[incident.category]
        candidates = self._units.available(required)
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda u: distance(u.lat, u.lng, incident.lat, incident.lng),
        )

    def auto_dispatch(self, incident: Incident) -> Unit | None:
        """Assign the nearest eligible unit.  Returns None when none is free."""
        with self._lock:
            if incident.resolved:
                return None
            unit = self.nearest_available(incident)
            if unit is None:
                self._report(
                    "DISPATCH",
                    f"WARNING: No units available for {incident.id}",
                    level=logging.WARNING,
                )
                return None
            self.assign(unit, incident)
            return unit

    def _retry_unassigned(self) -> None:
        for incident in self._incidents.active():
            if incident.assigned_units:
                continue
            unit = self.nearest_available(incident)
            if unit is not None:
                self.assign(unit, incident)

    def assign(self, unit: Unit, incident: Incident) -> None:
        """Link a unit to an incident and send it on its way."""
        with self._lock:
            if unit.target_incident_id not in (None, incident.id):
                self._detach(unit)
            unit.dispatch_to(incident.id, incident.lat, incident.lng)
            if unit.id not in incident.assigned_units:
                incident.assigned_units.append(unit.id)
            self._report("DISPATCH", f"Assigned {unit.id} to {incident.id}")
            self._event_bus.publish("unit_dispatched", {
                "unit_id": unit.id,
                "incident_id": incident.id,
                "destination": {"lat": incident.lat, "lng": incident.lng},
            })

    def _release(self, incident: Incident) -> None:
        """Free every unit working a resolved incident."""
        self._report("SYSTEM", f"Incident {incident.id} RESOLVED.")
        for unit_id in incident.assigned_units:
            unit = self._units.get(unit_id)
            if unit is None or unit.target_incident_id != incident.id:
                continue
            unit.release()
            self._report("DISPATCH", f"Unit {unit.id} returning to Available.")
            self._event_bus.publish("unit_released", unit.to_dict())
        incident.assigned_units.clear()
        self._event_bus.publish("incident_resolved", incident.to_dict())

    def _detach(self, unit: Unit) -> None:
        if unit.target_incident_id is None:
            return
        incident = self._incidents.get(unit.target_incident_id)
        if incident is not None and unit.id in incident.assigned_units:
            incident.assigned_units.remove(unit.id)

    # -- Operator entry points ----------------------------------------------

    def find_unit(self, ref: str) -> Unit | None:
        """Look up a unit, guessing a category prefix if the bare id misses."""
        ref = ref.strip()
        candidates = [ref, ref.upper()]
        candidates += [f"{prefix}-{ref.upper()}" for prefix in UNIT_PREFIXES.values()]
        for candidate in candidates:
            unit = self._units.get(candidate)
            if unit is not None:
                return unit
        return None

    def find_incident(self, ref: str) -> Incident | None:
        ref = ref.strip()
        for candidate in (ref, ref.upper(), f"INC-{ref}"):
            incident = self._incidents.get(candidate)
            if incident is not None:
                return incident
        return None

    def _require_unit(self, ref: str) -> Unit:
        unit = self.find_unit(ref)
        if unit is None:
            self._report("ERROR", f"Unit {ref} not found.", level=logging.WARNING)
            raise UnitNotFoundError(ref)
        return unit

    def _require_incident(self, ref: str) -> Incident:
        incident = self.find_incident(ref)
        if incident is None:
            self._report("ERROR", f"Incident {ref} not found.", level=logging.WARNING)
            raise IncidentNotFoundError(ref)
        return incident

    def manual_dispatch(self, unit_id: str, incident_id: str) -> Unit:
        """Operator dispatch of a specific unit to a specific incident.

        Raises:
            UnitNotFoundError / IncidentNotFoundError: id did not resolve.
            InvalidStateError: unit not available, or incident resolved.
        """
        with self._lock:
            unit = self._require_unit(unit_id)
            incident = self._require_incident(incident_id)

            if unit.status is not UnitStatus.AVAILABLE:
                self._report(
                    "DISPATCH",
                    f"Unit {unit.id} is {unit.status.value}. Cannot deploy.",
                    level=logging.WARNING,
                )
                raise InvalidStateError(f"Unit {unit.id} is {unit.status.value}")
            if incident.resolved:
                self._report(
                    "DISPATCH",
                    f"Incident {incident.id} is already resolved.",
                    level=logging.WARNING,
                )
                raise InvalidStateError(f"Incident {incident.id} is resolved")

            self.assign(unit, incident)
            return unit

    def set_unit_status(self, unit_id: str, status: UnitStatus | str) -> Unit:
        """Operator override of a unit's status, bypassing matching.

        Forcing a unit to available or out-of-service drops its assignment.
        Forcing busy stops it where it stands but keeps its incident.
        """
        with self._lock:
            requested = status
            try:
                status = UnitStatus(status)
            except ValueError:
                status = None
            if status not in OVERRIDE_STATUSES:
                label = getattr(requested, "value", requested)
                self._report("ERROR", f"Status {label} cannot be set manually.",
                             level=logging.WARNING)
                raise InvalidStateError(f"Status {label} cannot be set manually")

            unit = self._require_unit(unit_id)
            if status is UnitStatus.BUSY:
                unit.status = status
                unit.target_lat = None
                unit.target_lng = None
            else:
                self._detach(unit)
                unit.release(status)

            self._report("OPERATOR", f"Set {unit.id} to {status.value}")
            self._event_bus.publish("unit_status", unit.to_dict())
            return unit

    def toggle_chaos(self) -> bool:
        with self._lock:
            self._chaos = not self._chaos
            self._report("SYSTEM", f"CHAOS MODE: {'ENGAGED' if self._chaos else 'DISENGAGED'}")
            self._event_bus.publish("chaos_mode", {"enabled": self._chaos})
            return self._chaos

    def create_incident(
        self,
        category: IncidentCategory | str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> Incident:
        """Operator-created incident, auto-dispatched like a spawn.

        Without a category the random-spawn category policy applies; without
        a location a random point inside the spawn radius is used.
        """
        with self._lock:
            if category is None:
                category = self._incidents.random_category()
            else:
                try:
                    category = IncidentCategory(category)
                except ValueError:
                    self._report("ERROR", f"Unknown incident category {category!r}.",
                                 level=logging.WARNING)
                    raise UnknownCategoryError(f"Unknown incident category: {category}")
            if lat is None or lng is None:
                lat, lng = random_point_within_radius(
                    self.center_lat, self.center_lng,
                    self._incidents.SPAWN_RADIUS_M, rng=self._rng,
                )

            incident = self._incidents.create_manual(category, lat, lng)
            self._report("OPERATOR", f"Manual Incident Created: {incident.category.value.upper()}")
            self._event_bus.publish("incident_created", incident.to_dict())
            self.auto_dispatch(incident)
            return incident

    def spawn_cluster(self, count: int | None = None) -> list[Incident]:
        with self._lock:
            count = self.CLUSTER_SIZE if count is None else count
            self._report("OPERATOR", f"Spawning Incident Cluster ({count})...")
            return [self._spawn() for _ in range(count)]

    # -- Snapshot -----------------------------------------------------------

    def snapshot(self) -> IncidentSnapshot:
        with self._lock:
            return self._incidents.snapshot()

    def restore(self, data: IncidentSnapshot | dict | None) -> int:
        """Restore incidents from persisted data.

        Malformed data is logged and treated as no prior state.  Returns the
        number of active incidents restored.
        """
        if data is None:
            return 0
        with self._lock:
            try:
                snapshot = data if isinstance(data, IncidentSnapshot) else IncidentSnapshot.parse(data)
            except SnapshotError as e:
                logger.error(f"Ignoring persisted state: {e}")
                self._report("SYSTEM", "Persisted incidents unreadable; starting fresh.",
                             level=logging.WARNING)
                return 0
            count = self._incidents.restore(snapshot)
            if count:
                self._report("SYSTEM", f"Restored {count} active incidents.")
            return count

    # -- Internals ----------------------------------------------------------

    def _report(self, actor: str, message: str, level: int = logging.INFO) -> None:
        logger.log(level, f"{actor}: {message}")
        entry = self._log.append(actor, message)
        self._event_bus.publish("operator_log", entry.to_dict())
