"""
Unit tests for the risk calculator.
"""

import math
from datetime import datetime, timedelta

import pytest

from src.liqshield.protocol.models import PositionSnapshot
from src.liqshield.risk_engine.calculator import (
    BIPS,
    SLIPPAGE_FACTOR,
    analyze_position,
    conservative_analysis,
    hard_liquidation_premium,
    ltv_bips,
    position_age,
    precise_valuation,
    soft_liquidation_premium,
)
from src.liqshield.risk_engine.classifier import explain, needs_protection
from src.liqshield.risk_engine.models import RiskCategory, Valuation

NOW = datetime(2026, 1, 1, 12, 0, 0)
DAY = 24 * 3600


def snapshot(**amounts) -> PositionSnapshot:
    return PositionSnapshot(user="alice", market="WETH-USDC", **amounts)


class TestAnalyzePosition:
    """Test analyze_position on representative positions."""

    def test_healthy_position_needs_no_protection(self):
        """Collateral 1000, debt 500: health factor 2.0."""
        analysis = analyze_position(snapshot(deposit_x=1000.0, borrow_x=500.0), created_at=NOW, now=NOW)

        assert analysis.health_factor == pytest.approx(2.0)
        assert analysis.ltv_bips == 5000
        assert analysis.category == RiskCategory.SAFE
        assert analysis.valuation == Valuation.SIMPLE
        assert not needs_protection(analysis, threshold=1.2)

    def test_high_ltv_position_is_leverage(self):
        """Collateral 1000, debt 900: LTV 90% reaches the leverage rule first."""
        analysis = analyze_position(snapshot(deposit_x=1000.0, borrow_x=900.0), created_at=NOW, now=NOW)

        assert analysis.health_factor == pytest.approx(1.1111, rel=1e-3)
        assert analysis.ltv_bips == 9000
        assert analysis.would_fail_solvency
        assert analysis.hard_liquidation_premium == BIPS
        assert analysis.category == RiskCategory.LEVERAGE
        assert analysis.immediate_action
        assert needs_protection(analysis, threshold=1.2)

    def test_leverage_ratio_above_limit(self):
        analysis = analyze_position(snapshot(deposit_x=100.0, borrow_l=600.0), created_at=NOW, now=NOW)

        assert analysis.leverage_ratio == pytest.approx(6.0)
        assert analysis.has_liquidity_debt
        assert analysis.category == RiskCategory.LEVERAGE

    def test_moderate_ltv_is_hard(self):
        analysis = analyze_position(snapshot(deposit_x=1000.0, borrow_y=650.0), created_at=NOW, now=NOW)

        assert analysis.ltv_bips == 6500
        assert not analysis.would_fail_solvency
        assert analysis.category == RiskCategory.HARD
        assert needs_protection(analysis, threshold=1.2)

    def test_zero_debt_is_safe_with_infinite_health_factor(self):
        analysis = analyze_position(snapshot(deposit_x=100.0), created_at=NOW, now=NOW)

        assert math.isinf(analysis.health_factor)
        assert analysis.category == RiskCategory.SAFE
        assert analysis.ltv_bips == 0
        assert not needs_protection(analysis, threshold=1.5)
        assert "No debt" in explain(analysis, 1.5)

    def test_empty_position_is_safe(self):
        analysis = analyze_position(snapshot(), now=NOW)

        assert math.isinf(analysis.health_factor)
        assert analysis.category == RiskCategory.SAFE

    def test_zero_collateral_with_debt_is_hard(self):
        analysis = analyze_position(snapshot(borrow_x=10.0), created_at=NOW, now=NOW)

        assert analysis.health_factor == 0.0
        assert analysis.category == RiskCategory.HARD
        assert analysis.immediate_action
        assert analysis.would_fail_solvency

    def test_precise_valuation_used_when_available(self):
        position = snapshot(
            deposit_x=10.0,
            borrow_y=8.0,
            sqrt_price_min=2.0,
            sqrt_price_max=4.0,
            active_liquidity_scaler=1.0,
        )
        analysis = analyze_position(position, created_at=NOW, now=NOW)

        assert analysis.valuation == Valuation.PRECISE
        assert analysis.collateral_equivalent == pytest.approx(20.0)
        assert analysis.debt_equivalent == pytest.approx(4.0)
        assert analysis.health_factor == pytest.approx(5.0)
        assert analysis.ltv_bips == 2000
        # Leverage ratio stays on raw totals
        assert analysis.leverage_ratio == pytest.approx(0.8)

    def test_malformed_valuation_inputs_fall_back_to_simple(self):
        position = snapshot(
            deposit_x=10.0,
            borrow_y=5.0,
            sqrt_price_min=0.0,
            sqrt_price_max=4.0,
            active_liquidity_scaler=1.0,
        )
        analysis = analyze_position(position, created_at=NOW, now=NOW)

        assert analysis.valuation == Valuation.SIMPLE
        assert analysis.health_factor == pytest.approx(2.0)

    def test_unknown_age_assumes_old_position(self):
        analysis = analyze_position(snapshot(deposit_x=1000.0, borrow_x=500.0), created_at=None, now=NOW)

        assert analysis.soft_liquidation_premium == BIPS


class TestPreciseValuation:
    """Test the unit conversion into liquidity equivalents."""

    def test_conversion(self):
        position = snapshot(
            deposit_l=1.0,
            deposit_x=2.0,
            deposit_y=8.0,
            borrow_l=0.5,
            borrow_x=1.0,
            borrow_y=4.0,
            sqrt_price_min=2.0,
            sqrt_price_max=4.0,
            active_liquidity_scaler=3.0,
        )
        collateral, debt = precise_valuation(position)

        # 1*3 + 2*2 + 8/4
        assert collateral == pytest.approx(9.0)
        # 0.5*3 + 1*4 + 4/2
        assert debt == pytest.approx(7.5)

    def test_slippage_when_liquidity_is_scarce(self):
        position = snapshot(
            deposit_x=10.0,
            borrow_y=8.0,
            sqrt_price_min=2.0,
            sqrt_price_max=4.0,
            active_liquidity_scaler=1.0,
            available_liquidity=5.0,
        )
        collateral, debt = precise_valuation(position)

        assert collateral == pytest.approx(20.0)
        assert debt == pytest.approx(4.0 * SLIPPAGE_FACTOR)

    def test_missing_inputs(self):
        assert precise_valuation(snapshot(deposit_x=1.0, borrow_x=1.0, sqrt_price_min=1.0)) is None

    def test_inverted_range_rejected(self):
        position = snapshot(
            deposit_x=1.0,
            borrow_x=1.0,
            sqrt_price_min=4.0,
            sqrt_price_max=2.0,
            active_liquidity_scaler=1.0,
        )
        assert precise_valuation(position) is None


class TestPremiums:
    """Test liquidation premium curves."""

    def test_ltv_bips(self):
        assert ltv_bips(1000.0, 900.0) == 9000
        assert ltv_bips(0.0, 10.0) == BIPS

    @pytest.mark.parametrize("ltv,expected", [
        (0, 0),
        (7500, 0),
        (8250, 5000),
        (9000, BIPS),
        (9800, BIPS),
    ])
    def test_hard_premium(self, ltv, expected):
        assert hard_liquidation_premium(ltv) == expected

    def test_hard_premium_is_monotonic_in_ltv(self):
        premiums = [hard_liquidation_premium(ltv) for ltv in range(0, 12001, 50)]
        assert premiums == sorted(premiums)

    def test_soft_premium_delay_and_ramp(self):
        assert soft_liquidation_premium(0) == 0
        assert soft_liquidation_premium(7 * DAY) == 0
        assert soft_liquidation_premium(22 * DAY) == 5000
        assert soft_liquidation_premium(100 * DAY) == BIPS

    def test_position_age(self):
        created = NOW - timedelta(days=2)
        assert position_age(created, NOW) == pytest.approx(2 * DAY)
        # Clock skew never produces a negative age
        assert position_age(NOW + timedelta(seconds=5), NOW) == 0.0


class TestConservativeAnalysis:
    """Test the worst-case analysis used when a read fails."""

    def test_worst_case(self):
        analysis = conservative_analysis("gateway timeout", now=NOW)

        assert analysis.category == RiskCategory.HARD
        assert analysis.health_factor == 0.0
        assert analysis.immediate_action
        assert analysis.valuation == Valuation.CONSERVATIVE
        assert needs_protection(analysis, threshold=1.2)
        assert "could not be read" in explain(analysis, 1.2)
