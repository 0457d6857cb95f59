"""Bounded operator log — the human-readable event feed of the console."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable


@dataclass(frozen=True)
class LogEntry:
    timestamp: float
    actor: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class OperatorLog:
    """Keeps the most recent ``limit`` entries, oldest first."""

    def __init__(self, limit: int = 50, clock: Callable[[], float] = time.time) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=limit)
        self._clock = clock
        self._lock = threading.Lock()

    def append(self, actor: str, message: str) -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), actor=actor, message=message)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self, limit: int | None = None) -> list[LogEntry]:
        with self._lock:
            items = list(self._entries)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
