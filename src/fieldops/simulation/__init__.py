"""Dispatch simulation — incident and unit registries plus the engine."""
from .engine import DispatchEngine
from .errors import (
    DispatchError,
    IncidentNotFoundError,
    InvalidStateError,
    NotFoundError,
    SnapshotError,
    UnitNotFoundError,
    UnknownCategoryError,
)
from .incidents import Incident, IncidentRegistry
from .runner import SimulationRunner
from .snapshot import ActiveIncidentRecord, HistoryRecord, IncidentSnapshot
from .types import IncidentCategory, UnitCategory, UnitStatus
from .units import Unit, UnitRegistry, minimum_fuel

__all__ = [
    "ActiveIncidentRecord",
    "DispatchEngine",
    "DispatchError",
    "HistoryRecord",
    "Incident",
    "IncidentCategory",
    "IncidentNotFoundError",
    "IncidentRegistry",
    "IncidentSnapshot",
    "InvalidStateError",
    "NotFoundError",
    "SimulationRunner",
    "SnapshotError",
    "Unit",
    "UnitCategory",
    "UnitNotFoundError",
    "UnitRegistry",
    "UnitStatus",
    "UnknownCategoryError",
    "minimum_fuel",
]
