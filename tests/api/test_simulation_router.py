"""Unit tests for the simulation control router (/api/status, log, commands)."""
from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fieldops.app.routers import simulation_router


def _make_app(engine=None):
    app = FastAPI()
    app.include_router(simulation_router)
    app.state.engine = engine
    return app


@pytest.fixture
def client(fleet_engine):
    return TestClient(_make_app(fleet_engine))


@pytest.mark.unit
class TestStatus:

    def test_counts(self, client, fleet_engine):
        fleet_engine.create_incident("fire", 13.0, 79.1)
        data = client.get("/api/status").json()
        assert data["running"] is True
        assert data["chaos"] is False
        assert data["active_incidents"] == 1
        assert data["available_units"] == 29

    def test_503_without_engine(self):
        client = TestClient(_make_app(engine=None))
        assert client.get("/api/status").status_code == 503


@pytest.mark.unit
class TestChaos:

    def test_toggle_round_trip(self, client, fleet_engine):
        assert client.post("/api/simulation/chaos").json() == {"chaos": True}
        assert fleet_engine.chaos is True
        assert client.post("/api/simulation/chaos").json() == {"chaos": False}


@pytest.mark.unit
class TestOperatorLog:

    def test_entries_oldest_first(self, client, fleet_engine):
        fleet_engine.toggle_chaos()
        entries = client.get("/api/log").json()
        assert entries[0]["message"] == "Simulation Started."
        assert entries[-1] == {
            "timestamp": entries[-1]["timestamp"],
            "actor": "SYSTEM",
            "message": "CHAOS MODE: ENGAGED",
        }

    def test_limit(self, client, fleet_engine):
        fleet_engine.toggle_chaos()
        fleet_engine.toggle_chaos()
        entries = client.get("/api/log", params={"limit": 1}).json()
        assert [e["message"] for e in entries] == ["CHAOS MODE: DISENGAGED"]


@pytest.mark.unit
class TestCommands:

    def test_executes_phrase(self, client, fleet_engine):
        resp = client.post("/api/commands", json={"text": "create incident flood"})
        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        assert fleet_engine.active_incident_count == 1

    def test_failed_command_still_200(self, client):
        resp = client.post("/api/commands", json={"text": "deploy z-1 to 9"})
        assert resp.status_code == 200
        assert resp.json()["ok"] is False

    def test_empty_text_rejected(self, client):
        assert client.post("/api/commands", json={"text": ""}).status_code == 422
