"""Risk Engine module."""

from .calculator import analyze_position, conservative_analysis
from .classifier import classify, explain, needs_protection, requires_immediate_action
from .models import RiskAnalysis, RiskCategory, Valuation

__all__ = [
    "RiskAnalysis",
    "RiskCategory",
    "Valuation",
    "analyze_position",
    "conservative_analysis",
    "classify",
    "explain",
    "needs_protection",
    "requires_immediate_action",
]
