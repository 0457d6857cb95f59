"""API routers."""
from .incidents import router as incidents_router
from .simulation import router as simulation_router
from .units import router as units_router

__all__ = ["incidents_router", "simulation_router", "units_router"]
