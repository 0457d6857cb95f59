"""EventBus — thread-safe pub/sub for engine events.

The dispatch engine publishes lifecycle events here; the host loop and the
HTTP layer subscribe.  Each subscriber gets its own bounded queue.
"""

from __future__ import annotations

import queue
import threading


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscribers: list[tuple[queue.Queue, frozenset[str] | None]] = []

    def subscribe(self, *event_types: str) -> queue.Queue:
        """Subscribe to events.  Returns a Queue of ``{"type", "data"}`` dicts.

        With no ``event_types`` the queue receives everything.
        """
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        types = frozenset(event_types) if event_types else None
        with self._lock:
            self._subscribers.append((q, types))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [(s, t) for s, t in self._subscribers if s is not q]

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q, types in self._subscribers:
                if types is not None and event_type not in types:
                    continue
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest so fresh events still land
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass
