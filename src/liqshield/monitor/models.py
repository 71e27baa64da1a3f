"""
Monitor domain data models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Set
from pydantic import BaseModel, Field


class DispatchDecision(str, Enum):
    """What the dispatcher did with an input."""
    DISPATCHED = "DISPATCHED"
    IGNORED_IN_FLIGHT = "IGNORED_IN_FLIGHT"
    IGNORED_INTERVAL = "IGNORED_INTERVAL"
    IGNORED_COOLDOWN = "IGNORED_COOLDOWN"
    IGNORED_UNMONITORED = "IGNORED_UNMONITORED"
    SEND_FAILED = "SEND_FAILED"


class DispatchState(BaseModel):
    """Process-wide dispatcher state. Mutated only by the dispatcher."""
    cycle_in_flight: bool = False
    pending_command_id: Optional[str] = None
    last_periodic_check: Optional[datetime] = None
    last_emergency_check: Optional[datetime] = None
    monitored_markets: Set[str] = Field(default_factory=set)


class DispatcherStatus(BaseModel):
    """Read-only view for operators."""
    cycle_in_flight: bool
    in_flight_seconds: Optional[float] = None
    stale: bool = False
    last_periodic_check: Optional[datetime] = None
    last_emergency_check: Optional[datetime] = None
    monitored_market_count: int
    monitored_markets: list
