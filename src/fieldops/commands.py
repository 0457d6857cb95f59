"""Text command front end for the dispatch engine.

Turns typed (or transcribed) operator phrases into engine calls::

    deploy unit F-1 to incident INC-4      -> manual_dispatch("F-1", "INC-4")
    send a-2 7                             -> manual_dispatch("A-2", "7")
    create incident flood                  -> create_incident("flood")
    set unit F-3 out of service            -> set_unit_status("F-3", ...)
    chaos                                  -> toggle_chaos()
    cluster                                -> spawn_cluster()

Engine errors never escape; they come back as a failed CommandResult.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fieldops.simulation.errors import DispatchError
from fieldops.simulation.types import IncidentCategory, UnitStatus

if TYPE_CHECKING:
    from fieldops.simulation.engine import DispatchEngine

logger = logging.getLogger("fieldops.commands")

_ID = r"([a-z0-9-]+)"
_CATEGORIES = "|".join(c.value.replace("_", "[_ ]") for c in IncidentCategory)

DEPLOY_RE = re.compile(
    rf"(?:deploy|dispatch|send)\s+(?:unit\s+)?{_ID}\s+(?:(?:to|at)\s+)?(?:incident\s+)?{_ID}",
    re.IGNORECASE,
)
CREATE_RE = re.compile(rf"create\s+(?:incident\s+)?({_CATEGORIES})\b", re.IGNORECASE)
STATUS_RE = re.compile(
    rf"set\s+(?:unit\s+)?{_ID}\s+(?:status\s+)?(?:to\s+)?"
    r"(available|out[_ -]of[_ -]service|busy)",
    re.IGNORECASE,
)
CHAOS_RE = re.compile(r"^(?:toggle\s+)?chaos(?:\s+mode)?$", re.IGNORECASE)
CLUSTER_RE = re.compile(r"^(?:spawn\s+)?cluster(?:\s+(\d+))?$", re.IGNORECASE)


@dataclass(frozen=True)
class CommandResult:
    action: str
    ok: bool
    message: str

    def to_dict(self) -> dict:
        return {"action": self.action, "ok": self.ok, "message": self.message}


def normalize_id(raw: str) -> str:
    """Canonical form of a spoken or typed id: ``"f 1"`` -> ``"F-1"``."""
    text = raw.upper().replace("UNIT", "").replace("INCIDENT", "").replace("=", "")
    return re.sub(r"\s+", "-", text.strip())


class CommandParser:
    """Matches operator phrases against known commands and executes them."""

    def __init__(self, engine: DispatchEngine) -> None:
        self._engine = engine

    def execute(self, text: str) -> CommandResult:
        text = text.strip().lower()
        logger.info(f"Executing: {text}")

        match = DEPLOY_RE.search(text)
        if match:
            unit_id, incident_id = normalize_id(match[1]), normalize_id(match[2])
            return self._run(
                "dispatch",
                lambda: self._engine.manual_dispatch(unit_id, incident_id),
                lambda unit: f"{unit.id} dispatched to {unit.target_incident_id}",
            )

        match = CREATE_RE.search(text)
        if match:
            category = IncidentCategory(re.sub(r"\s", "_", match[1]))
            return self._run(
                "create",
                lambda: self._engine.create_incident(category),
                lambda inc: f"{inc.id} created ({inc.category.value})",
            )

        match = STATUS_RE.search(text)
        if match:
            unit_id = normalize_id(match[1])
            status = UnitStatus(re.sub(r"[_ ]", "-", match[2]))
            return self._run(
                "status",
                lambda: self._engine.set_unit_status(unit_id, status),
                lambda unit: f"{unit.id} set to {unit.status.value}",
            )

        if CHAOS_RE.match(text):
            return self._run(
                "chaos",
                self._engine.toggle_chaos,
                lambda on: f"Chaos mode {'engaged' if on else 'disengaged'}",
            )

        match = CLUSTER_RE.match(text)
        if match:
            count = int(match[1]) if match[1] else None
            return self._run(
                "cluster",
                lambda: self._engine.spawn_cluster(count),
                lambda spawned: f"{len(spawned)} incidents spawned",
            )

        logger.info("Command not recognized")
        return CommandResult("unknown", False, "Command not recognized.")

    @staticmethod
    def _run(action, call, describe) -> CommandResult:
        try:
            outcome = call()
        except DispatchError as e:
            return CommandResult(action, False, str(e))
        return CommandResult(action, True, describe(outcome))
