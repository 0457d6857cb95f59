"""Error taxonomy for operator-facing engine operations.

Lack of capacity is deliberately absent: an incident with no eligible unit
simply stays unassigned and is retried on later ticks.
"""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for every error the dispatch engine reports."""


class NotFoundError(DispatchError):
    """A referenced unit or incident id did not resolve."""

    kind = "entity"

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"{self.kind.capitalize()} {ref} not found")


class UnitNotFoundError(NotFoundError):
    kind = "unit"


class IncidentNotFoundError(NotFoundError):
    kind = "incident"


class InvalidStateError(DispatchError):
    """The operation is not allowed in the entity's current state."""


class SnapshotError(DispatchError):
    """Persisted state could not be parsed into a snapshot."""


class UnknownCategoryError(DispatchError):
    """An incident category outside the enumerated set was requested."""
