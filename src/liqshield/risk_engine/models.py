"""
Data models for risk engine.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_serializer


class RiskCategory(str, Enum):
    """Risk categories, in decreasing order of classification priority."""
    LEVERAGE = "LEVERAGE"
    SOFT = "SOFT"
    HARD = "HARD"
    SAFE = "SAFE"


class Valuation(str, Enum):
    """Which valuation path produced the analysis."""
    PRECISE = "precise"
    SIMPLE = "simple"
    CONSERVATIVE = "conservative"


class RiskAnalysis(BaseModel):
    """Derived risk view of one position. Never persisted."""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    category: RiskCategory

    # Core metrics
    health_factor: float = Field(description="Collateral / debt; inf when there is no debt")
    leverage_ratio: float = Field(description="Debt / collateral")
    borrow_utilization: float = Field(description="Debt / (collateral + debt)")
    ltv_bips: int = Field(description="Protocol-style loan-to-value in basis points")

    # Flags and premiums
    would_fail_solvency: bool
    hard_liquidation_premium: int = Field(0, description="0-10000 bips")
    soft_liquidation_premium: int = Field(0, description="0-10000 bips")
    immediate_action: bool = False
    has_liquidity_debt: bool = False
    position_age_seconds: float = 0.0

    # Valuation details
    total_collateral: float = 0.0
    total_debt: float = 0.0
    collateral_equivalent: float = 0.0
    debt_equivalent: float = 0.0
    valuation: Valuation = Valuation.SIMPLE
    fetch_error: Optional[str] = Field(None, description="Set when the analysis was synthesized after a failed read")

    @field_serializer("health_factor", "leverage_ratio", when_used="json")
    def _finite_or_none(self, value: float) -> Optional[float]:
        # JSON has no infinity
        return None if math.isinf(value) else value
