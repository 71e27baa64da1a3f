"""
Protection domain data models.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_serializer, model_validator

from ..risk_engine.models import RiskCategory


class ProtectionType(str, Enum):
    """How a subscription wants to be protected."""
    COLLATERAL_ONLY = "COLLATERAL_ONLY"
    DEBT_REPAYMENT_ONLY = "DEBT_REPAYMENT_ONLY"


class RemediationAction(str, Enum):
    """Remediation the planner can select."""
    DEPOSIT_COLLATERAL = "DEPOSIT_COLLATERAL"
    REPAY_DEBT = "REPAY_DEBT"
    REPAY_LIQUIDITY = "REPAY_LIQUIDITY"


class RemediationFailure(str, Enum):
    """Expected failure modes of a remediation attempt."""
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    INSUFFICIENT_AUTHORIZATION = "InsufficientAuthorization"
    TRANSFER_FAILED = "TransferFailed"
    PROTOCOL_CALL_FAILED = "ProtocolCallFailed"


class CheckStatus(str, Enum):
    """Terminal state of one check."""
    NOT_SUBSCRIBED = "NOT_SUBSCRIBED"
    COOLDOWN = "COOLDOWN"
    NOT_NEEDED = "NOT_NEEDED"
    ZERO_AMOUNT = "ZERO_AMOUNT"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class Subscription(BaseModel):
    """Protection subscription for one (user, market) pair."""
    user: str
    market: str
    active: bool = True
    protection_type: ProtectionType
    health_factor_threshold: float = Field(gt=1.0)
    target_health_factor: float
    protection_asset: str
    max_protection_amount: float = Field(gt=0)
    last_action_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _target_above_threshold(self):
        if self.target_health_factor <= self.health_factor_threshold:
            raise ValueError("target_health_factor must be above health_factor_threshold")
        return self


class RemediationPlan(BaseModel):
    """Planner output."""
    action: RemediationAction
    amount: float = Field(ge=0)
    base_amount: float = 0.0
    ltv_amount: float = 0.0
    category_multiplier: float = 1.0
    immediate_multiplier: float = 1.0


class RemediationResult(BaseModel):
    """Executor output. Failures are values, not exceptions."""
    action: RemediationAction
    requested_amount: float
    amount_used: float = 0.0
    failure: Optional[RemediationFailure] = None
    detail: Optional[str] = None
    funds_moved: bool = False

    @property
    def success(self) -> bool:
        return self.failure is None and self.amount_used > 0


class CheckOutcome(BaseModel):
    """Result of running the per-pair state machine once."""
    user: str
    market: str
    status: CheckStatus
    category: Optional[RiskCategory] = None
    amount_used: float = 0.0
    old_health_factor: Optional[float] = None
    new_health_factor: Optional[float] = None
    reason: Optional[str] = None

    @field_serializer("old_health_factor", "new_health_factor", when_used="json")
    def _finite_or_none(self, value: Optional[float]) -> Optional[float]:
        if value is None or math.isinf(value):
            return None
        return value

    @property
    def executed(self) -> bool:
        return self.status == CheckStatus.EXECUTED

    @property
    def failed(self) -> bool:
        return self.status == CheckStatus.FAILED


class SubscribeRequest(BaseModel):
    """Subscribe parameters as received from a user."""
    user: str
    market: str
    protection_type: ProtectionType
    health_factor_threshold: float
    target_health_factor: float
    protection_asset: str
    max_protection_amount: float


# Outbound events

class ProtectionEvent(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    event_type: str
    user: str
    market: str


class Subscribed(ProtectionEvent):
    event_type: str = "Subscribed"
    protection_type: ProtectionType
    health_factor_threshold: float
    target_health_factor: float
    protection_asset: str
    max_protection_amount: float


class Unsubscribed(ProtectionEvent):
    event_type: str = "Unsubscribed"


class ProtectionExecuted(ProtectionEvent):
    event_type: str = "ProtectionExecuted"
    category: RiskCategory
    action: RemediationAction
    amount_used: float
    old_health_factor: float
    new_health_factor: float

    @field_serializer("old_health_factor", "new_health_factor", when_used="json")
    def _finite_or_none(self, value: float) -> Optional[float]:
        return None if math.isinf(value) else value


class ProtectionFailed(ProtectionEvent):
    event_type: str = "ProtectionFailed"
    category: RiskCategory
    reason: str
