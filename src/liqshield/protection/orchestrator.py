"""
Protection orchestration: the per-(user, market) check state machine.

    Idle -> CooldownCheck -> Analyze -> Decide -> (Skip | Remediate) -> RecordOutcome -> Idle
"""

import asyncio
import math
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..config import ProtectionSettings
from ..logging import get_logger
from ..protocol.client import LendingProtocol
from ..risk_engine.calculator import analyze_position, conservative_analysis
from ..risk_engine.classifier import LTV_SOLVENCY_BIPS, explain, needs_protection
from ..risk_engine.models import RiskAnalysis, RiskCategory
from ..shared.errors import NoBorrowPosition, NotSubscribed
from ..shared.messages import CommandKind, CycleCompleted
from . import metrics
from .executor import RemediationExecutor
from .ledger import ProtectionLedger, validate_subscription_params
from .models import (
    CheckOutcome,
    CheckStatus,
    ProtectionExecuted,
    ProtectionFailed,
    RemediationAction,
    SubscribeRequest,
    Subscribed,
    Subscription,
    Unsubscribed,
)
from .planner import RemediationPlanner

logger = get_logger(__name__)

EventSink = Callable[[BaseModel], Awaitable[None]]

# Display-only damping of the post-remediation estimate
ESTIMATE_CATEGORY_FACTORS = {
    RiskCategory.LEVERAGE: 0.8,
    RiskCategory.SOFT: 0.9,
}
ESTIMATE_HIGH_LTV_FACTOR = 0.9

MAX_EVENT_HISTORY = 500


def estimate_new_health_factor(analysis: RiskAnalysis, action: RemediationAction, amount: float) -> float:
    """Rough health factor after remediation. For observability only.

    The next check always re-reads the real position.
    """
    old = analysis.health_factor
    debt = analysis.debt_equivalent
    collateral = analysis.collateral_equivalent
    if math.isinf(old) or debt <= 0 or amount <= 0:
        return old

    if action == RemediationAction.DEPOSIT_COLLATERAL:
        improvement = amount / debt
    else:
        remaining = debt - amount
        if remaining <= 0:
            return float("inf")
        improvement = collateral / remaining - collateral / debt

    factor = ESTIMATE_CATEGORY_FACTORS.get(analysis.category, 1.0)
    if analysis.ltv_bips >= LTV_SOLVENCY_BIPS:
        factor *= ESTIMATE_HIGH_LTV_FACTOR
    return old + improvement * factor


class ProtectionOrchestrator:
    """Runs protection checks against the ledger's subscriptions."""

    def __init__(
        self,
        config: ProtectionSettings,
        ledger: ProtectionLedger,
        protocol: LendingProtocol,
        executor: RemediationExecutor,
        planner: Optional[RemediationPlanner] = None,
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config
        self.ledger = ledger
        self.protocol = protocol
        self.executor = executor
        self.planner = planner or RemediationPlanner()
        self.event_sink = event_sink
        self.clock = clock
        self.event_history: List[BaseModel] = []
        self._pair_locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    async def _emit(self, event: BaseModel):
        self.event_history.append(event)
        if len(self.event_history) > MAX_EVENT_HISTORY:
            self.event_history = self.event_history[-MAX_EVENT_HISTORY:]

        if self.event_sink is not None:
            try:
                await self.event_sink(event)
            except Exception as e:
                logger.error("Failed to emit event", event_type=type(event).__name__, error=str(e))

    # Subscriptions

    async def subscribe(self, request: SubscribeRequest) -> Subscription:
        validate_subscription_params(request, self.config.supported_markets)

        snapshot = await self.protocol.get_position(request.user, request.market)
        if snapshot.total_debt <= 0:
            raise NoBorrowPosition(request.user, request.market)

        subscription = self.ledger.add(request, now=self.clock())
        metrics.active_subscribers.set(self.ledger.active_count())

        await self._emit(Subscribed(
            user=subscription.user,
            market=subscription.market,
            protection_type=subscription.protection_type,
            health_factor_threshold=subscription.health_factor_threshold,
            target_health_factor=subscription.target_health_factor,
            protection_asset=subscription.protection_asset,
            max_protection_amount=subscription.max_protection_amount,
        ))
        return subscription

    async def unsubscribe(self, user: str, market: str) -> Subscription:
        subscription = self.ledger.remove(user, market)
        metrics.active_subscribers.set(self.ledger.active_count())
        await self._emit(Unsubscribed(user=user, market=market))
        return subscription

    def get_subscription(self, user: str, market: str) -> Optional[Subscription]:
        return self.ledger.get(user, market)

    def active_subscriber_count(self) -> int:
        return self.ledger.active_count()

    # Analysis

    async def analyze(self, subscription: Subscription, now: Optional[datetime] = None) -> RiskAnalysis:
        """Run the risk model; a failed read yields the worst-case analysis."""
        now = now or self.clock()
        try:
            snapshot = await self.protocol.get_position(subscription.user, subscription.market)
        except Exception as e:
            metrics.data_fetch_failures.inc()
            logger.warning(
                "Position read failed, assuming worst case",
                user=subscription.user,
                market=subscription.market,
                error=str(e),
            )
            return conservative_analysis(str(e), now)
        return analyze_position(snapshot, subscription.created_at, now)

    # State machine

    def _pair_lock(self, user: str, market: str) -> asyncio.Lock:
        lock = self._pair_locks.get((user, market))
        if lock is None:
            lock = self._pair_locks[(user, market)] = asyncio.Lock()
        return lock

    async def check_and_protect(self, user: str, market: str, emergency: bool = False) -> CheckOutcome:
        # Batch and targeted checks may overlap; one check per pair at a time
        async with self._pair_lock(user, market):
            return await self._check_and_protect(user, market, emergency)

    async def _check_and_protect(self, user: str, market: str, emergency: bool) -> CheckOutcome:
        now = self.clock()
        subscription = self.ledger.get(user, market)
        if subscription is None:
            return self._finish(CheckOutcome(user=user, market=market, status=CheckStatus.NOT_SUBSCRIBED))

        window = self.config.emergency_cooldown_seconds if emergency else self.config.routine_cooldown_seconds
        if self.ledger.in_cooldown(subscription, window, now):
            return self._finish(CheckOutcome(user=user, market=market, status=CheckStatus.COOLDOWN))

        analysis = await self.analyze(subscription, now)

        if not needs_protection(analysis, subscription.health_factor_threshold):
            return self._finish(CheckOutcome(
                user=user,
                market=market,
                status=CheckStatus.NOT_NEEDED,
                category=analysis.category,
                old_health_factor=analysis.health_factor,
            ))

        plan = self.planner.plan(subscription, analysis)
        if plan.amount <= 0:
            return self._finish(CheckOutcome(
                user=user,
                market=market,
                status=CheckStatus.ZERO_AMOUNT,
                category=analysis.category,
                old_health_factor=analysis.health_factor,
            ))

        logger.info(
            "Remediating position",
            user=user,
            market=market,
            category=analysis.category.value,
            health_factor=analysis.health_factor,
            ltv_bips=analysis.ltv_bips,
            action=plan.action.value,
            amount=plan.amount,
            emergency=emergency,
        )
        result = await self.executor.execute(subscription, plan)

        # Cooldown applies to failed attempts as well
        self.ledger.record_action(user, market, now)

        if result.success:
            new_hf = estimate_new_health_factor(analysis, plan.action, result.amount_used)
            metrics.remediation_amount.labels(action=plan.action.value).inc(result.amount_used)
            await self._emit(ProtectionExecuted(
                user=user,
                market=market,
                category=analysis.category,
                action=plan.action,
                amount_used=result.amount_used,
                old_health_factor=analysis.health_factor,
                new_health_factor=new_hf,
            ))
            return self._finish(CheckOutcome(
                user=user,
                market=market,
                status=CheckStatus.EXECUTED,
                category=analysis.category,
                amount_used=result.amount_used,
                old_health_factor=analysis.health_factor,
                new_health_factor=new_hf,
            ))

        reason = result.failure.value if result.failure else "NoFundsUsed"
        if result.detail:
            reason = f"{reason}: {result.detail}"
        metrics.remediation_failures.labels(
            reason=result.failure.value if result.failure else "unknown"
        ).inc()
        logger.warning("Protection failed", user=user, market=market, reason=reason)
        await self._emit(ProtectionFailed(
            user=user,
            market=market,
            category=analysis.category,
            reason=reason,
        ))
        return self._finish(CheckOutcome(
            user=user,
            market=market,
            status=CheckStatus.FAILED,
            category=analysis.category,
            old_health_factor=analysis.health_factor,
            reason=reason,
        ))

    def _finish(self, outcome: CheckOutcome) -> CheckOutcome:
        metrics.checks_total.labels(status=outcome.status.value).inc()
        return outcome

    async def _guarded_check(self, semaphore: asyncio.Semaphore, subscription: Subscription) -> CheckOutcome:
        async with semaphore:
            try:
                return await self.check_and_protect(subscription.user, subscription.market)
            except Exception as e:
                logger.exception("Unexpected error during check", user=subscription.user, market=subscription.market)
                return self._finish(CheckOutcome(
                    user=subscription.user,
                    market=subscription.market,
                    status=CheckStatus.FAILED,
                    reason=f"unexpected error: {e}",
                ))

    # Commands

    async def check_all(self, command_id: Optional[str] = None) -> CycleCompleted:
        """Walk every active subscription once; failures are isolated and counted."""
        started = time.time()
        subscriptions = list(self.ledger.active())
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_checks))

        outcomes = await asyncio.gather(
            *(self._guarded_check(semaphore, subscription) for subscription in subscriptions)
        )

        completed = CycleCompleted(
            command_id=command_id,
            kind=CommandKind.CHECK_ALL,
            checked=len(outcomes),
            executed=sum(1 for o in outcomes if o.executed),
            failed=sum(1 for o in outcomes if o.failed),
            skipped=sum(1 for o in outcomes if not o.executed and not o.failed),
            completed_at=self.clock(),
        )
        metrics.cycle_duration.observe(time.time() - started)
        logger.info(
            "Protection cycle completed",
            checked=completed.checked,
            executed=completed.executed,
            failed=completed.failed,
        )
        await self._emit(completed)
        return completed

    async def _targeted(self, kind: CommandKind, user: str, market: str, emergency: bool,
                        command_id: Optional[str]) -> CycleCompleted:
        outcome = await self.check_and_protect(user, market, emergency=emergency)
        completed = CycleCompleted(
            command_id=command_id,
            kind=kind,
            checked=1,
            executed=int(outcome.executed),
            failed=int(outcome.failed),
            skipped=int(not outcome.executed and not outcome.failed),
            completed_at=self.clock(),
        )
        await self._emit(completed)
        return completed

    async def emergency_check(self, user: str, market: str, command_id: Optional[str] = None) -> CycleCompleted:
        return await self._targeted(CommandKind.EMERGENCY_CHECK, user, market, True, command_id)

    async def position_change_check(self, user: str, market: str, command_id: Optional[str] = None) -> CycleCompleted:
        return await self._targeted(CommandKind.POSITION_CHANGE_CHECK, user, market, False, command_id)

    # Queries

    async def risk_statistics(self) -> Dict[str, Any]:
        """Average health factor and at-risk count across active subscriptions."""
        subscriptions = list(self.ledger.active())
        analyses = await asyncio.gather(*(self.analyze(s) for s in subscriptions))

        finite = [a.health_factor for a in analyses if not math.isinf(a.health_factor)]
        at_risk = sum(
            1 for s, a in zip(subscriptions, analyses)
            if needs_protection(a, s.health_factor_threshold)
        )
        by_category: Dict[str, int] = {category.value: 0 for category in RiskCategory}
        for analysis in analyses:
            by_category[analysis.category.value] += 1

        return {
            "active_subscribers": len(subscriptions),
            "average_health_factor": sum(finite) / len(finite) if finite else None,
            "at_risk": at_risk,
            "by_category": by_category,
        }

    async def explain_risk(self, user: str, market: str) -> Dict[str, Any]:
        """Detailed risk breakdown with a human-readable reason."""
        subscription = self.ledger.get(user, market)
        if subscription is None:
            raise NotSubscribed(user, market)

        analysis = await self.analyze(subscription)
        needed = needs_protection(analysis, subscription.health_factor_threshold)
        plan = self.planner.plan(subscription, analysis) if needed else None

        return {
            "user": user,
            "market": market,
            "analysis": analysis.model_dump(mode="json"),
            "protection_needed": needed,
            "reason": explain(analysis, subscription.health_factor_threshold),
            "planned_action": plan.action.value if plan else None,
            "planned_amount": plan.amount if plan else 0.0,
            "in_cooldown": self.ledger.in_cooldown(
                subscription, self.config.routine_cooldown_seconds, self.clock()
            ),
        }
