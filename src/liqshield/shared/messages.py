"""
Messages exchanged between the monitor and protection domains.

Delivery is at-least-once and unordered; nothing here assumes a reply
other than the explicit CycleCompleted signal.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CommandKind(str, Enum):
    """Commands the monitor domain can issue."""
    CHECK_ALL = "CHECK_ALL"
    EMERGENCY_CHECK = "EMERGENCY_CHECK"
    POSITION_CHANGE_CHECK = "POSITION_CHANGE_CHECK"


class ProtocolEventKind(str, Enum):
    """Lending protocol events observed by the monitor domain."""
    LIQUIDATE = "LIQUIDATE"
    BORROW = "BORROW"
    BORROW_LIQUIDITY = "BORROW_LIQUIDITY"
    WITHDRAW = "WITHDRAW"
    REPAY = "REPAY"
    REPAY_LIQUIDITY = "REPAY_LIQUIDITY"
    DEPOSIT = "DEPOSIT"

    @property
    def is_risk_increasing(self) -> bool:
        return self in (
            ProtocolEventKind.BORROW,
            ProtocolEventKind.BORROW_LIQUIDITY,
            ProtocolEventKind.WITHDRAW,
        )

    @property
    def is_risk_decreasing(self) -> bool:
        return self in (
            ProtocolEventKind.REPAY,
            ProtocolEventKind.REPAY_LIQUIDITY,
            ProtocolEventKind.DEPOSIT,
        )


class ProtocolEvent(BaseModel):
    """An observed protocol event. `user` is the owner of the affected position."""
    kind: ProtocolEventKind
    market: str
    user: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    tx_hash: Optional[str] = None


class ProtectionCommand(BaseModel):
    """Monitor -> protection command."""
    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: CommandKind
    user: Optional[str] = None
    market: Optional[str] = None
    sender: str
    issued_at: datetime = Field(default_factory=datetime.utcnow)


class CycleCompleted(BaseModel):
    """Protection -> monitor completion signal, also an observable event."""
    command_id: Optional[str] = None
    kind: CommandKind
    checked: int = 0
    executed: int = 0
    failed: int = 0
    skipped: int = 0
    completed_at: datetime = Field(default_factory=datetime.utcnow)
