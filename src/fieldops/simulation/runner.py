"""SimulationRunner — threaded host loop for the dispatch engine.

The engine never reads a clock; the runner measures wall time between
frames with a monotonic clock and hands the elapsed milliseconds over.
Oversized gaps (a suspended process) are passed through unchanged and the
engine discards them.

When a snapshot store is attached the runner persists incidents whenever
an incident lifecycle event shows up on the event bus, plus once on stop.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from fieldops.storage import SnapshotStore

    from .engine import DispatchEngine

logger = logging.getLogger("fieldops.runner")

PERSIST_EVENTS = (
    "incident_spawned",
    "incident_created",
    "incident_resolved",
)


class SimulationRunner:
    """Calls ``engine.tick`` at a fixed interval from a daemon thread."""

    def __init__(
        self,
        engine: DispatchEngine,
        interval: float = 0.05,
        store: SnapshotStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._interval = interval
        self._store = store
        self._clock = clock
        self._running = False
        self._thread: threading.Thread | None = None
        self._last: float | None = None
        self._sub: queue.Queue | None = None
        self._errors = 0
        self._subscribe()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def errors(self) -> int:
        return self._errors

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._subscribe()
        self._last = self._clock()
        self._thread = threading.Thread(
            target=self._loop, name="dispatch-tick", daemon=True,
        )
        self._thread.start()
        logger.info(f"Simulation runner started ({1 / self._interval:.0f} Hz)")

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._sub is not None:
            self._engine.event_bus.unsubscribe(self._sub)
            self._sub = None
        self.persist()

    def _subscribe(self) -> None:
        if self._store is not None and self._sub is None:
            self._sub = self._engine.event_bus.subscribe(*PERSIST_EVENTS)

    def _loop(self) -> None:
        while self._running:
            time.sleep(self._interval)
            self.step()

    def step(self) -> bool:
        """Run one frame: measure elapsed time, tick, persist if needed.

        Errors are logged and counted; the loop keeps going.
        """
        now = self._clock()
        last = self._last if self._last is not None else now
        self._last = now
        applied = False
        try:
            applied = self._engine.tick((now - last) * 1000.0)
        except Exception:
            self._errors += 1
            logger.exception("Simulation tick failed")
        if self._pending_changes():
            self.persist()
        return applied

    def _pending_changes(self) -> bool:
        if self._sub is None:
            return False
        changed = False
        while True:
            try:
                self._sub.get_nowait()
            except queue.Empty:
                return changed
            changed = True

    def persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._engine.snapshot())
        except OSError as e:
            logger.warning(f"Could not persist incidents: {e}")
