"""
Lending protocol data models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ProtocolAction(str, Enum):
    """Position-mutating protocol calls made on a user's behalf."""
    DEPOSIT = "deposit"
    REPAY = "repay"
    REPAY_LIQUIDITY = "repay_liquidity"


class PositionSnapshot(BaseModel):
    """Raw position of one user in one market, fetched fresh for every analysis.

    Amounts are per asset class: L is the liquidity class, X and Y the two
    market tokens.
    """
    user: str
    market: str
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    deposit_l: float = Field(0.0, ge=0)
    deposit_x: float = Field(0.0, ge=0)
    deposit_y: float = Field(0.0, ge=0)
    borrow_l: float = Field(0.0, ge=0)
    borrow_x: float = Field(0.0, ge=0)
    borrow_y: float = Field(0.0, ge=0)

    # Precise valuation inputs; any of them missing means simple valuation
    sqrt_price_min: Optional[float] = Field(None, description="Lower bound of the sqrt price range (Y per X)")
    sqrt_price_max: Optional[float] = Field(None, description="Upper bound of the sqrt price range (Y per X)")
    active_liquidity_scaler: Optional[float] = Field(None, description="Liquidity units per L token")
    available_liquidity: Optional[float] = Field(None, description="Market liquidity available to absorb a liquidation")

    @property
    def total_collateral(self) -> float:
        return self.deposit_l + self.deposit_x + self.deposit_y

    @property
    def total_debt(self) -> float:
        return self.borrow_l + self.borrow_x + self.borrow_y

    @property
    def has_valuation_data(self) -> bool:
        return None not in (
            self.sqrt_price_min,
            self.sqrt_price_max,
            self.active_liquidity_scaler,
        )
