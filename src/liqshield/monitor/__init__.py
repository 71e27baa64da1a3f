"""Monitor module: event-driven dispatch of protection commands."""

from .dispatcher import EventDispatcher
from .models import DispatchDecision, DispatcherStatus, DispatchState
from .service import MonitorService

__all__ = [
    "EventDispatcher",
    "DispatchDecision",
    "DispatcherStatus",
    "DispatchState",
    "MonitorService",
]
