"""
Risk classification and the protection decision.
"""

from typing import List

from .models import RiskAnalysis, RiskCategory

LEVERAGE_RATIO_LIMIT = 5.0
SOFT_LEVERAGE_RATIO = 3.0
SOFT_UTILIZATION = 0.8
SOFT_MIN_AGE_SECONDS = 7 * 24 * 3600

LTV_WARNING_BIPS = 6000
LTV_SOLVENCY_BIPS = 7500
LTV_IMMEDIATE_BIPS = 9000
IMMEDIATE_HEALTH_FACTOR = 1.05
SOFT_PREMIUM_TRIGGER_BIPS = 500


def classify(
    leverage_ratio: float,
    ltv_bips: int,
    position_age_seconds: float,
    borrow_utilization: float,
    soft_liquidation_premium: int,
    would_fail_solvency: bool,
    hard_liquidation_premium: int,
) -> RiskCategory:
    """Pick a risk category. First matching rule wins."""
    if leverage_ratio >= LEVERAGE_RATIO_LIMIT or ltv_bips >= LTV_SOLVENCY_BIPS:
        return RiskCategory.LEVERAGE

    if (
        position_age_seconds > SOFT_MIN_AGE_SECONDS
        and leverage_ratio > SOFT_LEVERAGE_RATIO
        and borrow_utilization > SOFT_UTILIZATION
        and soft_liquidation_premium > 0
    ):
        return RiskCategory.SOFT

    if would_fail_solvency or ltv_bips >= LTV_WARNING_BIPS or hard_liquidation_premium > 0:
        return RiskCategory.HARD

    return RiskCategory.SAFE


def requires_immediate_action(would_fail_solvency: bool, ltv_bips: int, health_factor: float) -> bool:
    return (
        would_fail_solvency
        or ltv_bips >= LTV_IMMEDIATE_BIPS
        or health_factor <= IMMEDIATE_HEALTH_FACTOR
    )


def protection_triggers(analysis: RiskAnalysis, threshold: float) -> List[str]:
    """Return every rule that calls for protection; empty means no action."""
    triggers = []
    if analysis.would_fail_solvency:
        triggers.append("solvency check would fail")
    if analysis.ltv_bips >= LTV_WARNING_BIPS:
        triggers.append(f"LTV {analysis.ltv_bips / 100:.2f}% at or above {LTV_WARNING_BIPS / 100:.0f}%")
    if analysis.health_factor < threshold:
        triggers.append(f"health factor {analysis.health_factor:.4f} below threshold {threshold:.4f}")
    if analysis.hard_liquidation_premium > 0:
        triggers.append(f"hard liquidation premium {analysis.hard_liquidation_premium} bips")
    if (
        analysis.category == RiskCategory.SOFT
        and analysis.soft_liquidation_premium > SOFT_PREMIUM_TRIGGER_BIPS
    ):
        triggers.append(f"soft liquidation premium {analysis.soft_liquidation_premium} bips")
    if analysis.category == RiskCategory.LEVERAGE and analysis.immediate_action:
        triggers.append("leveraged position requires immediate action")
    return triggers


def needs_protection(analysis: RiskAnalysis, threshold: float) -> bool:
    """OR across all triggers, independent of category order."""
    return bool(protection_triggers(analysis, threshold))


def explain(analysis: RiskAnalysis, threshold: float) -> str:
    """Human-readable reason for the protection decision."""
    if analysis.fetch_error:
        return f"Position could not be read ({analysis.fetch_error}); assuming worst case"
    triggers = protection_triggers(analysis, threshold)
    if not triggers:
        if analysis.total_debt == 0:
            return "No debt; position cannot be liquidated"
        return (
            f"{analysis.category.value} risk, no protection needed: health factor "
            f"{analysis.health_factor:.4f}, LTV {analysis.ltv_bips / 100:.2f}%"
        )
    return f"{analysis.category.value} risk, protection needed: " + "; ".join(triggers)
