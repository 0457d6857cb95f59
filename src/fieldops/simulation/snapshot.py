"""Serializable incident snapshot — what a persistence collaborator stores.

Units are not part of the snapshot; the fleet is re-created at startup and
restored incidents start unassigned.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError

from .errors import SnapshotError
from .types import IncidentCategory

INCIDENT_ID_PATTERN = r"^INC-\d+$"


class ActiveIncidentRecord(BaseModel):
    id: str = Field(pattern=INCIDENT_ID_PATTERN)
    category: IncidentCategory
    lat: float
    lng: float
    severity: float = Field(ge=0.0, le=10.0)
    growth_rate: float = Field(ge=0.0)
    created_at: float


class HistoryRecord(BaseModel):
    id: str = Field(pattern=INCIDENT_ID_PATTERN)
    category: IncidentCategory
    created_at: float
    resolved_at: float
    severity: float


class IncidentSnapshot(BaseModel):
    active_incidents: list[ActiveIncidentRecord] = Field(default_factory=list)
    incident_history: list[HistoryRecord] = Field(default_factory=list)

    @classmethod
    def parse(cls, data: object) -> IncidentSnapshot:
        """Validate raw decoded data, raising SnapshotError on any problem."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SnapshotError(f"Invalid incident snapshot: {e}") from e


def incident_number(incident_id: str) -> int:
    """Numeric suffix of an ``INC-<n>`` id."""
    return int(incident_id.split("-", 1)[1])
