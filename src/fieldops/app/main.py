"""FIELDOPS - emergency response dispatch console.

Main FastAPI application.
"""

from __future__ import annotations

import random
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from fieldops import __version__
from fieldops.app.config import Settings, settings as default_settings
from fieldops.app.routers import incidents_router, simulation_router, units_router
from fieldops.comms import EventBus, OperatorLog
from fieldops.simulation import (
    DispatchEngine,
    IncidentRegistry,
    SimulationRunner,
    UnitRegistry,
)
from fieldops.storage import SnapshotStore


def build_engine(cfg: Settings, store: SnapshotStore | None = None) -> DispatchEngine:
    """Create the engine, restore persisted incidents and build the fleet."""
    rng = random.Random(cfg.random_seed)
    engine = DispatchEngine(
        cfg.map_center_lat,
        cfg.map_center_lng,
        incidents=IncidentRegistry(
            rng=rng,
            history_limit=cfg.history_limit,
            spawn_radius_m=cfg.incident_radius_m,
        ),
        units=UnitRegistry(rng=rng, fleet_radius_m=cfg.fleet_radius_m),
        event_bus=EventBus(),
        operator_log=OperatorLog(limit=cfg.operator_log_limit),
        rng=rng,
        max_delta_ms=cfg.max_delta_ms,
        chaos=cfg.chaos_mode,
    )
    if store is not None:
        restored = engine.restore(store.load())
        if restored:
            logger.info(f"Restored {restored} active incidents from {store.path}")
    engine.initialize_fleet(cfg.units_per_category)
    return engine


def create_app(cfg: Settings | None = None, autostart: bool = True) -> FastAPI:
    """Build the FastAPI app.

    With ``autostart`` the lifespan starts the engine and its host loop
    thread; without it the engine is built but left stopped, which is what
    the API tests want.
    """
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"  {cfg.app_name} v{__version__} - INITIALIZING")
        logger.info("=" * 60)

        app.state.engine = None
        app.state.runner = None
        store = SnapshotStore(cfg.snapshot_path, history_limit=cfg.history_limit)
        app.state.store = store

        if cfg.simulation_enabled:
            engine = build_engine(cfg, store)
            app.state.engine = engine
            logger.info(
                f"Territory center {cfg.map_center_lat:.4f}, {cfg.map_center_lng:.4f}; "
                f"{len(engine.units)} units"
            )
            if autostart:
                engine.start(cfg.initial_incidents)
                runner = SimulationRunner(engine, interval=cfg.tick_interval, store=store)
                runner.start()
                app.state.runner = runner
                logger.info("Dispatch engine started")
        else:
            logger.info("Simulation disabled")

        yield

        runner = app.state.runner
        if runner is not None:
            runner.stop()
        if app.state.engine is not None:
            app.state.engine.stop()
        logger.info(f"{cfg.app_name} shutdown complete")

    app = FastAPI(
        title=cfg.app_name,
        description="Emergency response dispatch simulation",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(incidents_router)
    app.include_router(units_router)
    app.include_router(simulation_router)

    @app.get("/health")
    async def health():
        return {"status": "operational", "system": cfg.app_name}

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "fieldops.app.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )


if __name__ == "__main__":
    run()
