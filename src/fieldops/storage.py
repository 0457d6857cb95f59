"""SnapshotStore — JSON key-value file holding the incident snapshot.

Layout::

    {"active_incidents": [...], "incident_history": [...]}

Durability is best effort: writes go to a temp file that replaces the old
one.  Undecodable files load as None; validation happens in
DispatchEngine.restore, which treats bad data as "no prior state".
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from fieldops.simulation.snapshot import IncidentSnapshot

logger = logging.getLogger("fieldops.storage")


class SnapshotStore:
    """Reads and writes incident snapshots at ``path``."""

    HISTORY_LIMIT = 50

    def __init__(self, path: str | Path, history_limit: int | None = None) -> None:
        self.path = Path(path).expanduser()
        self.history_limit = history_limit or self.HISTORY_LIMIT

    def load(self) -> object | None:
        """Decoded file contents without validation, or None if unreadable."""
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Unreadable snapshot at {self.path}: {e}")
            return None

    def save(self, snapshot: IncidentSnapshot) -> None:
        data = snapshot.model_dump(mode="json")
        data["incident_history"] = data["incident_history"][-self.history_limit:]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".snapshot-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        logger.debug(
            f"Saved {len(data['active_incidents'])} active incidents "
            f"and {len(data['incident_history'])} history records"
        )

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
