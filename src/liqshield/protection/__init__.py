"""Protection module: subscriptions, risk-driven remediation and command handling."""

from .executor import RemediationExecutor
from .ledger import ProtectionLedger
from .models import ProtectionType, RemediationAction, RemediationFailure, Subscription
from .orchestrator import ProtectionOrchestrator
from .planner import RemediationPlanner
from .service import ProtectionService

__all__ = [
    "ProtectionType",
    "RemediationAction",
    "RemediationFailure",
    "Subscription",
    "ProtectionLedger",
    "RemediationPlanner",
    "RemediationExecutor",
    "ProtectionOrchestrator",
    "ProtectionService",
]
