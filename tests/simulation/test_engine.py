"""Tests for DispatchEngine — tick order, spawning, matching, operator ops.

Covers:
  - delta sanity bound (oversized and negative steps are dropped whole)
  - spawn timer thresholds / probabilities, chaos mode
  - release of units when incidents resolve
  - nearest-unit auto-dispatch, retry of unassigned incidents
  - manual dispatch with id-prefix guessing and error taxonomy
  - status overrides and the unit <-> incident link invariant
  - snapshot restore, including malformed data
"""

from __future__ import annotations

import random

import pytest

from fieldops.simulation.engine import DispatchEngine
from fieldops.simulation.errors import (
    IncidentNotFoundError,
    InvalidStateError,
    UnitNotFoundError,
    UnknownCategoryError,
)
from fieldops.simulation.types import IncidentCategory, UnitStatus

pytestmark = pytest.mark.unit

CENTER = (12.9165, 79.1325)


class FixedRoll(random.Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def _link_violations(engine: DispatchEngine) -> list[str]:
    problems = []
    for unit in engine.units:
        if (unit.target_lat is not None) != (unit.status is UnitStatus.EN_ROUTE):
            problems.append(f"{unit.id}: target coords vs status {unit.status.value}")
        if unit.status in (UnitStatus.EN_ROUTE, UnitStatus.BUSY):
            if unit.target_incident_id is None:
                problems.append(f"{unit.id}: {unit.status.value} without incident")
        if unit.target_incident_id is not None:
            incident = engine.incidents.get(unit.target_incident_id)
            if incident is None or incident.resolved:
                problems.append(f"{unit.id}: points at dead incident")
            elif unit.id not in incident.assigned_units:
                problems.append(f"{unit.id}: missing from {incident.id}")
    for incident in engine.incidents:
        if incident.resolved and incident.assigned_units:
            problems.append(f"{incident.id}: resolved but still assigned")
        for unit_id in incident.assigned_units:
            unit = engine.units.get(unit_id)
            if unit is None or unit.target_incident_id != incident.id:
                problems.append(f"{incident.id}: {unit_id} does not point back")
    return problems


# ===========================================================================
# Tick gating
# ===========================================================================

class TestDeltaBound:

    def test_oversized_delta_is_discarded(self, engine, add_unit):
        fire = engine.incidents.create_manual("fire", *CENTER)
        fire.severity = 2.0
        medical = engine.incidents.create_manual("medical", *CENTER)
        ambulance = add_unit(engine, "A-1", "Ambulance", meters_north=5_000)
        engine.assign(ambulance, medical)
        before = (ambulance.lat, ambulance.lng, medical.severity)

        assert engine.tick(1500) is False
        assert fire.severity == 2.0
        assert (ambulance.lat, ambulance.lng, medical.severity) == before
        assert engine.spawn_timer == 0.0
        assert engine.tick_count == 0

    def test_step_after_discard_applies(self, engine):
        fire = engine.incidents.create_manual("fire", *CENTER)
        fire.severity = 2.0
        engine.tick(1500)
        assert engine.tick(900) is True
        assert fire.severity == pytest.approx(2.0 + 0.005 * 900)
        assert engine.tick_count == 1

    def test_limit_itself_is_applied(self, engine):
        assert engine.tick(1000) is True

    def test_negative_delta_is_discarded(self, engine):
        assert engine.tick(-5) is False

    def test_configurable_bound(self, make_engine):
        engine = make_engine(max_delta_ms=250)
        assert engine.tick(300) is False
        assert engine.tick(200) is True

    def test_stopped_engine_ignores_ticks(self, make_engine):
        engine = make_engine(start=False)
        assert engine.tick(16) is False
        engine.start(initial_incidents=0)
        assert engine.tick(16) is True
        engine.stop()
        assert engine.tick(16) is False


# ===========================================================================
# Spawning
# ===========================================================================

class TestSpawner:

    def test_empty_board_spawns_after_one_second(self, engine):
        engine.tick(600)
        assert engine.active_incident_count == 0
        engine.tick(600)
        assert engine.active_incident_count == 1
        assert engine.spawn_timer == 0.0

    def test_empty_board_spawn_ignores_bad_luck(self, make_engine):
        engine = make_engine(engine_rng=FixedRoll(0.999999))
        engine.tick(800)
        engine.tick(800)
        assert engine.active_incident_count == 1

    def test_exactly_at_threshold_does_not_spawn(self, engine):
        engine.tick(1000)
        assert engine.active_incident_count == 0
        assert engine.spawn_timer == 1000.0

    def test_normal_policy_with_active_incidents(self, make_engine):
        engine = make_engine(engine_rng=FixedRoll(0.5))
        engine.incidents.create_manual("medical", *CENTER)
        assert engine.spawn_policy() == (3000.0, 0.6)
        for _ in range(3):
            engine.tick(1000)
        assert engine.active_incident_count == 1
        engine.tick(100)
        assert engine.active_incident_count == 2

    def test_failed_roll_still_resets_timer(self, make_engine):
        engine = make_engine(engine_rng=FixedRoll(0.95))
        engine.incidents.create_manual("medical", *CENTER)
        for _ in range(4):
            engine.tick(1000)
        assert engine.active_incident_count == 1
        assert engine.spawn_timer == 0.0

    def test_chaos_policy(self, make_engine):
        engine = make_engine(engine_rng=FixedRoll(0.7))
        engine.incidents.create_manual("medical", *CENTER)
        assert engine.toggle_chaos() is True
        assert engine.spawn_policy() == (500.0, 0.8)
        engine.tick(600)
        assert engine.active_incident_count == 2

    def test_chaos_does_not_override_empty_board(self, engine):
        engine.toggle_chaos()
        assert engine.spawn_policy() == (1000.0, 1.0)

    def test_toggle_chaos_flips(self, engine):
        assert engine.chaos is False
        assert engine.toggle_chaos() is True
        assert engine.toggle_chaos() is False
        assert engine.operator_log.entries()[-1].message == "CHAOS MODE: DISENGAGED"

    def test_spawn_is_auto_dispatched(self, make_engine):
        engine = make_engine(fleet=5)
        engine.tick(600)
        engine.tick(600)
        incident = engine.incidents.all()[0]
        assert len(incident.assigned_units) == 1
        unit = engine.units.get(incident.assigned_units[0])
        assert unit.status is UnitStatus.EN_ROUTE
        assert unit.target_incident_id == incident.id


# ===========================================================================
# Resolution
# ===========================================================================

class TestResolution:

    def test_units_released_on_resolution(self, engine, add_unit):
        incident = engine.incidents.create_manual("crash", *CENTER)
        a1 = add_unit(engine, "A-1", "Ambulance", 100)
        a2 = add_unit(engine, "A-2", "Ambulance", 200)
        engine.assign(a1, incident)
        engine.assign(a2, incident)
        incident.severity = 0.3

        engine.tick(100)
        assert incident.resolved
        assert incident.assigned_units == []
        for unit in (a1, a2):
            assert unit.status is UnitStatus.AVAILABLE
            assert unit.target_incident_id is None
            assert not unit.has_target
        assert _link_violations(engine) == []

    def test_busy_unit_released(self, engine, add_unit):
        incident = engine.incidents.create_manual("medical", *CENTER)
        unit = add_unit(engine, "A-1", "Ambulance", 10)
        engine.assign(unit, incident)
        engine.tick(16)
        assert unit.status is UnitStatus.BUSY
        incident.severity = 0.01
        engine.tick(16)
        assert unit.status is UnitStatus.AVAILABLE

    def test_resolution_recorded_once(self, engine, add_unit):
        incident = engine.incidents.create_manual("crash", *CENTER)
        engine.assign(add_unit(engine, "A-1", "Ambulance", 10), incident)
        incident.severity = 0.1
        engine.tick(100)
        assert engine.incidents.resolve(incident) is False
        assert len(engine.incidents.history) == 1

    def test_resolution_event_published(self, engine, add_unit):
        sub = engine.event_bus.subscribe("incident_resolved", "unit_released")
        incident = engine.incidents.create_manual("crash", *CENTER)
        engine.assign(add_unit(engine, "A-1", "Ambulance", 10), incident)
        incident.severity = 0.1
        engine.tick(100)
        types = [sub.get_nowait()["type"] for _ in range(sub.qsize())]
        assert types == ["unit_released", "incident_resolved"]


# ===========================================================================
# Auto-dispatch
# ===========================================================================

class TestAutoDispatch:

    def test_picks_nearest(self, engine, add_unit):
        for unit_id, meters in (("A-1", 50), ("A-2", 10), ("A-3", 30)):
            add_unit(engine, unit_id, "Ambulance", meters)
        incident = engine.incidents.create_manual("medical", *CENTER)
        chosen = engine.auto_dispatch(incident)
        assert chosen.id == "A-2"
        assert incident.assigned_units == ["A-2"]
        assert (chosen.target_lat, chosen.target_lng) == (incident.lat, incident.lng)
        assert engine.units.get("A-1").status is UnitStatus.AVAILABLE

    def test_ties_go_to_registry_order(self, engine, add_unit):
        add_unit(engine, "F-1", "Fire", 25)
        add_unit(engine, "F-2", "Fire", 25)
        incident = engine.incidents.create_manual("fire", *CENTER)
        assert engine.auto_dispatch(incident).id == "F-1"

    def test_uses_required_category(self, engine, add_unit):
        add_unit(engine, "A-1", "Ambulance", 5)
        add_unit(engine, "F-1", "Fire", 500)
        add_unit(engine, "WT-1", "WaterTanker", 1)
        incident = engine.incidents.create_manual("water_shortage", *CENTER)
        assert engine.auto_dispatch(incident).id == "F-1"

    def test_skips_unavailable_units(self, engine, add_unit):
        near = add_unit(engine, "A-1", "Ambulance", 5)
        near.status = UnitStatus.OUT_OF_SERVICE
        add_unit(engine, "A-2", "Ambulance", 900)
        incident = engine.incidents.create_manual("crash", *CENTER)
        assert engine.auto_dispatch(incident).id == "A-2"

    def test_no_capacity_warns_and_leaves_incident(self, engine, add_unit):
        add_unit(engine, "A-1", "Ambulance", 5)
        incident = engine.incidents.create_manual("fire", *CENTER)
        assert engine.auto_dispatch(incident) is None
        assert incident.assigned_units == []
        last = engine.operator_log.entries()[-1]
        assert last.actor == "DISPATCH"
        assert last.message == f"WARNING: No units available for {incident.id}"

    def test_unassigned_incident_retried_on_tick(self, engine, add_unit):
        incident = engine.incidents.create_manual("fire", *CENTER)
        assert engine.auto_dispatch(incident) is None
        engine.tick(16)
        assert incident.assigned_units == []

        add_unit(engine, "F-1", "Fire", 300)
        engine.tick(16)
        assert incident.assigned_units == ["F-1"]

    def test_released_unit_picks_up_waiting_incident(self, engine, add_unit):
        first = engine.incidents.create_manual("medical", *CENTER)
        waiting = engine.incidents.create_manual("crash", *CENTER)
        unit = add_unit(engine, "A-1", "Ambulance", 10)
        engine.assign(unit, first)
        first.severity = 0.01
        engine.tick(16)
        assert first.resolved
        assert unit.target_incident_id == waiting.id
        assert waiting.assigned_units == ["A-1"]

    def test_resolved_incident_not_dispatched(self, engine, add_unit):
        add_unit(engine, "F-1", "Fire", 10)
        incident = engine.incidents.create_manual("fire", *CENTER)
        engine.incidents.resolve(incident)
        assert engine.auto_dispatch(incident) is None
        assert engine.units.get("F-1").status is UnitStatus.AVAILABLE

    def test_readiness_gate_respected(self, engine, add_unit):
        tired = add_unit(engine, "F-1", "Fire", 10)
        tired.fuel = 0.0
        add_unit(engine, "F-2", "Fire", 800)
        incident = engine.incidents.create_manual("fire", *CENTER)
        assert engine.auto_dispatch(incident).id == "F-2"


# ===========================================================================
# Manual dispatch
# ===========================================================================

class TestManualDispatch:

    def test_dispatches_available_unit(self, engine, add_unit):
        add_unit(engine, "F-1", "Fire", 10)
        incident = engine.incidents.create_manual("medical", *CENTER)
        unit = engine.manual_dispatch("F-1", "INC-1")
        assert unit.target_incident_id == incident.id
        assert incident.assigned_units == ["F-1"]

    def test_prefix_guessing(self, engine, add_unit):
        add_unit(engine, "A-4", "Ambulance", 10)
        engine.incidents.create_manual("medical", *CENTER)
        engine.incidents.create_manual("medical", *CENTER)
        unit = engine.manual_dispatch("4", "2")
        assert unit.id == "A-4"
        assert unit.target_incident_id == "INC-2"

    def test_lowercase_ids(self, engine, add_unit):
        add_unit(engine, "FA-1", "FirstAid", 10)
        engine.incidents.create_manual("minor_injury", *CENTER)
        assert engine.manual_dispatch("fa-1", "inc-1").id == "FA-1"

    def test_en_route_unit_rejected_without_changes(self, engine, add_unit):
        unit = add_unit(engine, "F-1", "Fire", 10)
        target = engine.incidents.create_manual("fire", *CENTER)
        other = engine.incidents.create_manual("fire", *CENTER)
        engine.assign(unit, other)
        before = (unit.to_dict(), target.to_dict(), other.to_dict())

        with pytest.raises(InvalidStateError):
            engine.manual_dispatch("F-1", "INC-1")
        assert (unit.to_dict(), target.to_dict(), other.to_dict()) == before
        assert engine.operator_log.entries()[-1].message == "Unit F-1 is en-route. Cannot deploy."

    def test_unknown_unit(self, engine):
        engine.incidents.create_manual("fire", *CENTER)
        with pytest.raises(UnitNotFoundError) as exc:
            engine.manual_dispatch("Z-9", "INC-1")
        assert exc.value.ref == "Z-9"
        assert engine.operator_log.entries()[-1].actor == "ERROR"

    def test_unknown_incident(self, engine, add_unit):
        unit = add_unit(engine, "F-1", "Fire", 10)
        with pytest.raises(IncidentNotFoundError):
            engine.manual_dispatch("F-1", "INC-77")
        assert unit.status is UnitStatus.AVAILABLE

    def test_resolved_incident_rejected(self, engine, add_unit):
        unit = add_unit(engine, "F-1", "Fire", 10)
        incident = engine.incidents.create_manual("fire", *CENTER)
        engine.incidents.resolve(incident)
        with pytest.raises(InvalidStateError):
            engine.manual_dispatch("F-1", "INC-1")
        assert unit.status is UnitStatus.AVAILABLE
        assert incident.assigned_units == []

    def test_reassign_detaches_from_previous_incident(self, engine, add_unit):
        unit = add_unit(engine, "F-1", "Fire", 10)
        first = engine.incidents.create_manual("fire", *CENTER)
        second = engine.incidents.create_manual("flood", *CENTER)
        engine.assign(unit, first)
        engine.assign(unit, second)
        assert first.assigned_units == []
        assert second.assigned_units == ["F-1"]
        assert _link_violations(engine) == []


# ===========================================================================
# Status overrides
# ===========================================================================

class TestSetUnitStatus:

    def test_out_of_service_detaches(self, engine, add_unit):
        unit = add_unit(engine, "F-1", "Fire", 5_000)
        incident = engine.incidents.create_manual("fire", *CENTER)
        engine.assign(unit, incident)

        engine.set_unit_status("F-1", "out-of-service")
        assert unit.status is UnitStatus.OUT_OF_SERVICE
        assert incident.assigned_units == []
        assert unit.target_incident_id is None
        position = (unit.lat, unit.lng)
        engine.tick(16)
        assert (unit.lat, unit.lng) == position
        assert _link_violations(engine) == []

    def test_out_of_service_never_recovers_on_its_own(self, engine, add_unit):
        add_unit(engine, "A-1", "Ambulance", 10)
        engine.set_unit_status("A-1", UnitStatus.OUT_OF_SERVICE)
        engine.incidents.create_manual("medical", *CENTER)
        for _ in range(50):
            engine.tick(100)
        assert engine.units.get("A-1").status is UnitStatus.OUT_OF_SERVICE

    def test_back_to_available(self, engine, add_unit):
        unit = add_unit(engine, "A-1", "Ambulance", 10)
        engine.set_unit_status("1", "out-of-service")
        engine.set_unit_status("A-1", "available")
        assert unit.status is UnitStatus.AVAILABLE
        assert engine.available_unit_count == 1

    def test_busy_override_stops_movement(self, engine, add_unit):
        unit = add_unit(engine, "A-1", "Ambulance", 5_000)
        incident = engine.incidents.create_manual("medical", *CENTER)
        engine.assign(unit, incident)
        engine.set_unit_status("A-1", "busy")
        position = (unit.lat, unit.lng)
        engine.tick(16)
        assert (unit.lat, unit.lng) == position
        assert unit.status is UnitStatus.BUSY
        assert incident.assigned_units == ["A-1"]
        assert _link_violations(engine) == []

    @pytest.mark.parametrize("status", ["en-route", "parked", ""])
    def test_rejects_statuses_outside_override_set(self, engine, add_unit, status):
        unit = add_unit(engine, "A-1", "Ambulance", 10)
        with pytest.raises(InvalidStateError):
            engine.set_unit_status("A-1", status)
        assert unit.status is UnitStatus.AVAILABLE

    def test_unknown_unit(self, engine):
        with pytest.raises(UnitNotFoundError):
            engine.set_unit_status("Q-1", "busy")


# ===========================================================================
# Operator creation
# ===========================================================================

class TestCreateIncident:

    def test_with_category(self, fleet_engine):
        incident = fleet_engine.create_incident("flood")
        assert incident.category is IncidentCategory.FLOOD
        assert incident.severity == 3.0
        assert incident.growth_rate == 0.005
        assert len(incident.assigned_units) == 1
        assert incident.assigned_units[0].startswith("F-")

    def test_without_category_uses_random_policy(self, engine):
        incident = engine.create_incident()
        assert incident.category in set(IncidentCategory)
        assert incident.severity == 3.0

    def test_explicit_location(self, engine):
        incident = engine.create_incident("medical", 13.0, 79.2)
        assert (incident.lat, incident.lng) == (13.0, 79.2)

    def test_unknown_category(self, engine):
        with pytest.raises(UnknownCategoryError):
            engine.create_incident("volcano")
        assert len(engine.incidents) == 0

    def test_cluster(self, fleet_engine):
        spawned = fleet_engine.spawn_cluster()
        assert len(spawned) == 5
        assert fleet_engine.active_incident_count == 5
        assert [i.id for i in spawned] == [f"INC-{n}" for n in range(1, 6)]


# ===========================================================================
# Lifecycle
# ===========================================================================

class TestLifecycle:

    def test_start_seeds_incidents(self, make_engine):
        engine = make_engine(fleet=5, start=False)
        engine.start()
        assert engine.running
        assert engine.active_incident_count == 3
        assert engine.operator_log.entries()[-1].message == "Simulation Started."

    def test_start_twice_is_noop(self, make_engine):
        engine = make_engine(start=False)
        engine.start(initial_incidents=2)
        engine.start(initial_incidents=2)
        assert len(engine.incidents) == 2

    def test_state_summary(self, fleet_engine):
        fleet_engine.create_incident("medical")
        state = fleet_engine.get_state()
        assert state["running"] is True
        assert state["active_incidents"] == 1
        assert state["available_units"] == 29
        assert state["total_units"] == 30


# ===========================================================================
# Snapshot
# ===========================================================================

class TestRestore:

    def test_round_trip_through_dict(self, make_engine):
        source = make_engine()
        source.create_incident("fire")
        source.create_incident("medical")
        data = source.snapshot().model_dump(mode="json")

        target = make_engine()
        assert target.restore(data) == 2
        assert [i.id for i in target.incidents] == ["INC-1", "INC-2"]
        assert target.create_incident("crash").id == "INC-3"

    @pytest.mark.parametrize("data", [
        {"active_incidents": [{"id": "bogus"}]},
        {"active_incidents": "nope"},
        ["not", "a", "mapping"],
        {"active_incidents": [{"id": "INC-1", "category": "meteor", "lat": 0, "lng": 0,
                               "severity": 1, "growth_rate": 0, "created_at": 0}]},
    ])
    def test_malformed_data_restores_nothing(self, engine, data):
        assert engine.restore(data) == 0
        assert len(engine.incidents) == 0
        assert engine.incidents.next_number == 1

    def test_none_is_empty(self, engine):
        assert engine.restore(None) == 0

    def test_restored_incidents_get_units_on_next_tick(self, make_engine):
        source = make_engine()
        source.create_incident("medical")
        target = make_engine(fleet=1)
        target.restore(source.snapshot())
        incident = target.incidents.get("INC-1")
        assert incident.assigned_units == []
        target.tick(16)
        assert incident.assigned_units == ["A-1"]


# ===========================================================================
# Invariants under load
# ===========================================================================

class TestInvariants:

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_links_hold_every_tick(self, make_engine, seed):
        engine = make_engine(seed=seed, fleet=2)
        engine.start()
        engine.toggle_chaos()
        for _ in range(1_500):
            engine.tick(50)
            assert _link_violations(engine) == []
        assert engine.incidents.history, "expected at least one resolution"

    def test_severity_stays_in_range(self, make_engine):
        engine = make_engine(seed=9, fleet=1)
        engine.toggle_chaos()
        for _ in range(1_000):
            engine.tick(100)
            for incident in engine.incidents:
                assert 0.0 <= incident.severity <= 10.0
                if incident.resolved:
                    assert incident.severity == 0.0
