"""
Risk calculation engine.

Pure functions converting a raw position snapshot into the metrics the
classifier and planner work with. This is a best-effort replica of the
protocol's own liquidation math, used for decisions only.
"""

from datetime import datetime
from typing import Optional, Tuple

from ..protocol.models import PositionSnapshot
from .classifier import (
    LTV_SOLVENCY_BIPS,
    classify,
    requires_immediate_action,
)
from .models import RiskAnalysis, RiskCategory, Valuation

BIPS = 10_000
SECONDS_PER_DAY = 24 * 3600

HARD_PREMIUM_START_BIPS = 7500
HARD_PREMIUM_FULL_BIPS = 9000
SOFT_PREMIUM_DELAY_SECONDS = 7 * SECONDS_PER_DAY
SOFT_PREMIUM_RAMP_SECONDS = 30 * SECONDS_PER_DAY

# Applied to debt when market liquidity is scarce
SLIPPAGE_FACTOR = 1.005

UNKNOWN_AGE_SECONDS = 10 * 365 * SECONDS_PER_DAY


def precise_valuation(snapshot: PositionSnapshot) -> Optional[Tuple[float, float]]:
    """Convert every asset class into liquidity units.

    Collateral is valued at the least favourable end of the price range and
    debt at the most expensive end. Returns None when the valuation inputs
    are missing or malformed.
    """
    if not snapshot.has_valuation_data:
        return None

    s_min = snapshot.sqrt_price_min
    s_max = snapshot.sqrt_price_max
    scaler = snapshot.active_liquidity_scaler
    if s_min <= 0 or s_max < s_min or scaler <= 0:
        return None

    collateral = (
        snapshot.deposit_l * scaler
        + snapshot.deposit_x * s_min
        + snapshot.deposit_y / s_max
    )
    debt = (
        snapshot.borrow_l * scaler
        + snapshot.borrow_x * s_max
        + snapshot.borrow_y / s_min
    )

    if snapshot.available_liquidity is not None and snapshot.available_liquidity < collateral:
        debt *= SLIPPAGE_FACTOR

    return collateral, debt


def ltv_bips(collateral_equivalent: float, debt_equivalent: float) -> int:
    if collateral_equivalent <= 0:
        return BIPS
    return int(debt_equivalent * BIPS / collateral_equivalent)


def hard_liquidation_premium(ltv: int) -> int:
    """0 up to 75% LTV, then linear to 10000 bips at 90%."""
    if ltv <= HARD_PREMIUM_START_BIPS:
        return 0
    if ltv >= HARD_PREMIUM_FULL_BIPS:
        return BIPS
    span = HARD_PREMIUM_FULL_BIPS - HARD_PREMIUM_START_BIPS
    return (ltv - HARD_PREMIUM_START_BIPS) * BIPS // span


def soft_liquidation_premium(age_seconds: float) -> int:
    """0 for the first 7 days, then linear to 10000 bips over 30 days."""
    if age_seconds <= SOFT_PREMIUM_DELAY_SECONDS:
        return 0
    elapsed = age_seconds - SOFT_PREMIUM_DELAY_SECONDS
    return min(BIPS, int(elapsed * BIPS // SOFT_PREMIUM_RAMP_SECONDS))


def position_age(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return float(UNKNOWN_AGE_SECONDS)
    return max(0.0, (now - created_at).total_seconds())


def analyze_position(
    snapshot: PositionSnapshot,
    created_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> RiskAnalysis:
    """Compute the full risk analysis for one position."""
    now = now or datetime.utcnow()
    total_collateral = snapshot.total_collateral
    total_debt = snapshot.total_debt
    age = position_age(created_at, now)
    has_liquidity_debt = snapshot.borrow_l > 0

    if total_debt == 0:
        return RiskAnalysis(
            timestamp=now,
            category=RiskCategory.SAFE,
            health_factor=float("inf"),
            leverage_ratio=0.0,
            borrow_utilization=0.0,
            ltv_bips=0,
            would_fail_solvency=False,
            position_age_seconds=age,
            total_collateral=total_collateral,
            collateral_equivalent=total_collateral,
        )

    if total_collateral == 0:
        return RiskAnalysis(
            timestamp=now,
            category=RiskCategory.HARD,
            health_factor=0.0,
            leverage_ratio=float("inf"),
            borrow_utilization=1.0,
            ltv_bips=BIPS,
            would_fail_solvency=True,
            hard_liquidation_premium=BIPS,
            soft_liquidation_premium=soft_liquidation_premium(age),
            immediate_action=True,
            has_liquidity_debt=has_liquidity_debt,
            position_age_seconds=age,
            total_debt=total_debt,
            debt_equivalent=total_debt,
        )

    valuation = Valuation.SIMPLE
    collateral_eq, debt_eq = total_collateral, total_debt
    precise = precise_valuation(snapshot)
    if precise is not None and precise[0] > 0 and precise[1] > 0:
        collateral_eq, debt_eq = precise
        valuation = Valuation.PRECISE

    health_factor = collateral_eq / debt_eq
    leverage_ratio = total_debt / total_collateral
    utilization = total_debt / (total_collateral + total_debt)
    ltv = ltv_bips(collateral_eq, debt_eq)
    fails_solvency = ltv >= LTV_SOLVENCY_BIPS
    hard_premium = hard_liquidation_premium(ltv)
    soft_premium = soft_liquidation_premium(age)

    category = classify(
        leverage_ratio=leverage_ratio,
        ltv_bips=ltv,
        position_age_seconds=age,
        borrow_utilization=utilization,
        soft_liquidation_premium=soft_premium,
        would_fail_solvency=fails_solvency,
        hard_liquidation_premium=hard_premium,
    )

    return RiskAnalysis(
        timestamp=now,
        category=category,
        health_factor=health_factor,
        leverage_ratio=leverage_ratio,
        borrow_utilization=utilization,
        ltv_bips=ltv,
        would_fail_solvency=fails_solvency,
        hard_liquidation_premium=hard_premium,
        soft_liquidation_premium=soft_premium,
        immediate_action=requires_immediate_action(fails_solvency, ltv, health_factor),
        has_liquidity_debt=has_liquidity_debt,
        position_age_seconds=age,
        total_collateral=total_collateral,
        total_debt=total_debt,
        collateral_equivalent=collateral_eq,
        debt_equivalent=debt_eq,
        valuation=valuation,
    )


def conservative_analysis(reason: str, now: Optional[datetime] = None) -> RiskAnalysis:
    """Worst-case analysis used when the position cannot be read."""
    return RiskAnalysis(
        timestamp=now or datetime.utcnow(),
        category=RiskCategory.HARD,
        health_factor=0.0,
        leverage_ratio=float("inf"),
        borrow_utilization=1.0,
        ltv_bips=BIPS,
        would_fail_solvency=True,
        hard_liquidation_premium=BIPS,
        immediate_action=True,
        valuation=Valuation.CONSERVATIVE,
        fetch_error=reason,
    )
