"""In-process messaging: event bus and the operator-facing log."""
from .event_bus import EventBus
from .operator_log import LogEntry, OperatorLog

__all__ = ["EventBus", "LogEntry", "OperatorLog"]
