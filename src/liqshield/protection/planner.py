"""
Remediation planning: how much to move and which protocol action to use.
"""

from ..risk_engine.classifier import LTV_WARNING_BIPS
from ..risk_engine.calculator import BIPS
from ..risk_engine.models import RiskAnalysis, RiskCategory
from .models import ProtectionType, RemediationAction, RemediationPlan, Subscription

# (collateral path, repayment path)
CATEGORY_MULTIPLIERS = {
    RiskCategory.LEVERAGE: (1.5, 1.8),
    RiskCategory.SOFT: (1.25, 1.4),
}
IMMEDIATE_MULTIPLIER_COLLATERAL = 2.0
IMMEDIATE_MULTIPLIER_REPAYMENT = 2.5

LTV_EXCESS_SPAN_BIPS = BIPS - LTV_WARNING_BIPS


class RemediationPlanner:
    """Computes the remediation amount and selects the action."""

    def select_action(self, subscription: Subscription, analysis: RiskAnalysis) -> RemediationAction:
        if subscription.protection_type == ProtectionType.COLLATERAL_ONLY:
            return RemediationAction.DEPOSIT_COLLATERAL

        if analysis.has_liquidity_debt and analysis.category in (RiskCategory.LEVERAGE, RiskCategory.SOFT):
            # Deleverage (Leverage) or reduce saturation (Soft)
            return RemediationAction.REPAY_LIQUIDITY
        return RemediationAction.REPAY_DEBT

    def plan(self, subscription: Subscription, analysis: RiskAnalysis) -> RemediationPlan:
        action = self.select_action(subscription, analysis)
        cap = subscription.max_protection_amount
        target = subscription.target_health_factor

        if analysis.health_factor >= target and not analysis.would_fail_solvency:
            return RemediationPlan(action=action, amount=0.0)

        base = 0.0
        if analysis.health_factor < target:
            base = cap * (target - analysis.health_factor) / target

        ltv_amount = 0.0
        if analysis.ltv_bips > LTV_WARNING_BIPS:
            excess = min(analysis.ltv_bips - LTV_WARNING_BIPS, LTV_EXCESS_SPAN_BIPS)
            ltv_amount = cap * excess / LTV_EXCESS_SPAN_BIPS

        repayment = action != RemediationAction.DEPOSIT_COLLATERAL
        category_multiplier = 1.0
        if analysis.category in CATEGORY_MULTIPLIERS:
            collateral_mult, repayment_mult = CATEGORY_MULTIPLIERS[analysis.category]
            category_multiplier = repayment_mult if repayment else collateral_mult

        immediate_multiplier = 1.0
        if analysis.immediate_action:
            if repayment or analysis.would_fail_solvency:
                immediate_multiplier = IMMEDIATE_MULTIPLIER_REPAYMENT
            else:
                immediate_multiplier = IMMEDIATE_MULTIPLIER_COLLATERAL

        amount = max(base, ltv_amount) * category_multiplier * immediate_multiplier

        return RemediationPlan(
            action=action,
            amount=min(amount, cap),
            base_amount=base,
            ltv_amount=ltv_amount,
            category_multiplier=category_multiplier,
            immediate_multiplier=immediate_multiplier,
        )
