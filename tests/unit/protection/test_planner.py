"""
Unit tests for the remediation planner.
"""

import pytest

from src.liqshield.protection.models import ProtectionType, RemediationAction, Subscription
from src.liqshield.protection.planner import RemediationPlanner
from src.liqshield.protocol.models import PositionSnapshot
from src.liqshield.risk_engine.calculator import (
    analyze_position,
    hard_liquidation_premium,
    soft_liquidation_premium,
)
from src.liqshield.risk_engine.classifier import LTV_SOLVENCY_BIPS, classify, requires_immediate_action
from src.liqshield.risk_engine.models import RiskAnalysis, RiskCategory


def subscription(protection_type=ProtectionType.COLLATERAL_ONLY, max_amount=500.0, **overrides) -> Subscription:
    fields = dict(
        user="alice",
        market="WETH-USDC",
        protection_type=protection_type,
        health_factor_threshold=1.2,
        target_health_factor=1.5,
        protection_asset="WETH" if protection_type == ProtectionType.COLLATERAL_ONLY else "USDC",
        max_protection_amount=max_amount,
    )
    fields.update(overrides)
    return Subscription(**fields)


def analysis(**overrides) -> RiskAnalysis:
    fields = dict(
        category=RiskCategory.HARD,
        health_factor=1.4,
        leverage_ratio=0.7,
        borrow_utilization=0.41,
        ltv_bips=5000,
        would_fail_solvency=False,
    )
    fields.update(overrides)
    return RiskAnalysis(**fields)


class TestRemediationPlanner:
    """Test amount calculation and action selection."""

    @pytest.fixture
    def planner(self):
        return RemediationPlanner()

    def test_high_ltv_position_capped(self, planner):
        """Health factor 1.11 against target 1.5 with a 500 cap."""
        risk = analyze_position(
            PositionSnapshot(user="alice", market="WETH-USDC", deposit_x=1000.0, borrow_x=900.0)
        )
        plan = planner.plan(subscription(), risk)

        assert plan.action == RemediationAction.DEPOSIT_COLLATERAL
        assert plan.base_amount > 0
        assert plan.amount == pytest.approx(500.0)

    def test_leveraged_liquidity_debt_selects_liquidity_repayment(self, planner):
        risk = analyze_position(
            PositionSnapshot(user="alice", market="WETH-USDC", deposit_x=100.0, borrow_l=600.0)
        )
        plan = planner.plan(subscription(ProtectionType.DEBT_REPAYMENT_ONLY, max_amount=1000.0), risk)

        assert risk.category == RiskCategory.LEVERAGE
        assert plan.action == RemediationAction.REPAY_LIQUIDITY
        assert plan.category_multiplier == 1.8
        assert plan.amount == pytest.approx(1000.0)

    def test_category_multiplier_applied_before_cap(self, planner):
        risk = analysis(category=RiskCategory.LEVERAGE)
        plan = planner.plan(subscription(ProtectionType.DEBT_REPAYMENT_ONLY, max_amount=1000.0), risk)

        # base = 1000 * (1.5 - 1.4) / 1.5
        assert plan.action == RemediationAction.REPAY_DEBT
        assert plan.base_amount == pytest.approx(66.6667, rel=1e-4)
        assert plan.amount == pytest.approx(120.0, rel=1e-4)

    def test_soft_collateral_multiplier(self, planner):
        plan = planner.plan(subscription(max_amount=1000.0), analysis(category=RiskCategory.SOFT))

        assert plan.category_multiplier == 1.25
        assert plan.amount == pytest.approx(1000 * 0.1 / 1.5 * 1.25, rel=1e-4)

    def test_soft_liquidity_debt_repays_liquidity(self, planner):
        risk = analysis(category=RiskCategory.SOFT, has_liquidity_debt=True)
        action = planner.select_action(subscription(ProtectionType.DEBT_REPAYMENT_ONLY), risk)

        assert action == RemediationAction.REPAY_LIQUIDITY

    def test_hard_liquidity_debt_repays_regular_debt(self, planner):
        risk = analysis(category=RiskCategory.HARD, has_liquidity_debt=True)
        action = planner.select_action(subscription(ProtectionType.DEBT_REPAYMENT_ONLY), risk)

        assert action == RemediationAction.REPAY_DEBT

    def test_ltv_term_dominates(self, planner):
        risk = analysis(health_factor=1.45, ltv_bips=8000)
        plan = planner.plan(subscription(max_amount=1000.0), risk)

        # (8000 - 6000) / 4000 of the cap
        assert plan.ltv_amount == pytest.approx(500.0)
        assert plan.amount == pytest.approx(500.0)

    def test_immediate_multipliers(self, planner):
        collateral = planner.plan(subscription(max_amount=1000.0), analysis(immediate_action=True))
        repayment = planner.plan(
            subscription(ProtectionType.DEBT_REPAYMENT_ONLY, max_amount=1000.0),
            analysis(immediate_action=True),
        )

        assert collateral.immediate_multiplier == 2.0
        assert repayment.immediate_multiplier == 2.5

    def test_zero_when_target_reached_and_solvent(self, planner):
        plan = planner.plan(subscription(), analysis(health_factor=1.6))

        assert plan.amount == 0.0

    def test_solvency_failure_plans_even_above_target(self, planner):
        risk = analysis(health_factor=1.6, ltv_bips=7600, would_fail_solvency=True)
        plan = planner.plan(subscription(max_amount=1000.0), risk)

        assert plan.amount > 0

    @pytest.mark.parametrize("hf,ltv,category,immediate", [
        (0.0, 10000, RiskCategory.HARD, True),
        (0.5, 60000, RiskCategory.LEVERAGE, True),
        (1.1, 9500, RiskCategory.SOFT, True),
        (1.3, 6500, RiskCategory.HARD, False),
    ])
    def test_amount_never_exceeds_cap(self, planner, hf, ltv, category, immediate):
        risk = analysis(health_factor=hf, ltv_bips=ltv, category=category, immediate_action=immediate)
        for protection_type in ProtectionType:
            plan = planner.plan(subscription(protection_type, max_amount=250.0), risk)
            assert 0 <= plan.amount <= 250.0


def analysis_at_ltv(ltv: int, leverage_ratio: float, utilization: float, health_factor: float = 1.3) -> RiskAnalysis:
    """Rebuild the LTV-dependent fields while everything else stays fixed."""
    age = 10 * 365 * 24 * 3600.0
    fails = ltv >= LTV_SOLVENCY_BIPS
    hard = hard_liquidation_premium(ltv)
    soft = soft_liquidation_premium(age)
    return analysis(
        category=classify(leverage_ratio, ltv, age, utilization, soft, fails, hard),
        health_factor=health_factor,
        leverage_ratio=leverage_ratio,
        borrow_utilization=utilization,
        ltv_bips=ltv,
        would_fail_solvency=fails,
        hard_liquidation_premium=hard,
        soft_liquidation_premium=soft,
        immediate_action=requires_immediate_action(fails, ltv, health_factor),
        position_age_seconds=age,
    )


@pytest.mark.parametrize("protection_type", list(ProtectionType))
@pytest.mark.parametrize("leverage_ratio,utilization", [(0.6, 0.375), (3.5, 0.85)])
def test_amount_never_decreases_as_ltv_rises(protection_type, leverage_ratio, utilization):
    planner = RemediationPlanner()
    sub = subscription(protection_type, max_amount=1000.0)

    amounts = [
        planner.plan(sub, analysis_at_ltv(ltv, leverage_ratio, utilization)).amount
        for ltv in range(0, 12001, 50)
    ]

    assert all(later >= earlier for earlier, later in zip(amounts, amounts[1:]))
    assert amounts[-1] > amounts[0]
