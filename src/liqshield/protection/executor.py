"""
Remediation execution: move protection funds and call the protocol.
"""

from ..logging import get_logger
from ..protocol.client import LendingProtocol, TokenLedger
from .models import (
    RemediationAction,
    RemediationFailure,
    RemediationPlan,
    RemediationResult,
    Subscription,
)

logger = get_logger(__name__)


class RemediationExecutor:
    """Performs the transfer and protocol call for one plan.

    Balances and authorizations are read then acted on without locking; a
    user revoking authorization mid-flight surfaces as
    InsufficientAuthorization or TransferFailed.
    """

    def __init__(self, protocol: LendingProtocol, tokens: TokenLedger, spender: str):
        self.protocol = protocol
        self.tokens = tokens
        self.spender = spender

    def _fail(self, plan: RemediationPlan, failure: RemediationFailure, detail: str,
              funds_moved: bool = False) -> RemediationResult:
        return RemediationResult(
            action=plan.action,
            requested_amount=plan.amount,
            failure=failure,
            detail=detail,
            funds_moved=funds_moved,
        )

    async def execute(self, subscription: Subscription, plan: RemediationPlan) -> RemediationResult:
        user = subscription.user
        market = subscription.market
        asset = subscription.protection_asset
        amount = plan.amount

        if amount <= 0:
            return RemediationResult(action=plan.action, requested_amount=0.0)

        try:
            balance = await self.tokens.balance_of(asset, user)
        except Exception as e:
            return self._fail(plan, RemediationFailure.INSUFFICIENT_BALANCE, f"balance unavailable: {e}")
        if balance < amount:
            return self._fail(
                plan, RemediationFailure.INSUFFICIENT_BALANCE, f"balance {balance} < {amount}"
            )

        try:
            allowance = await self.tokens.allowance(asset, user, self.spender)
        except Exception as e:
            return self._fail(plan, RemediationFailure.INSUFFICIENT_AUTHORIZATION, f"allowance unavailable: {e}")
        if allowance < amount:
            return self._fail(
                plan, RemediationFailure.INSUFFICIENT_AUTHORIZATION, f"allowance {allowance} < {amount}"
            )

        try:
            transferred = await self.tokens.transfer_from(asset, user, self.protocol.custody_address, amount)
        except Exception as e:
            transferred = False
            logger.warning("Transfer raised", user=user, market=market, error=str(e))
        if not transferred:
            return self._fail(plan, RemediationFailure.TRANSFER_FAILED, "token transfer rejected")

        try:
            if plan.action == RemediationAction.DEPOSIT_COLLATERAL:
                await self.protocol.deposit(user, market, asset, amount)
            elif plan.action == RemediationAction.REPAY_LIQUIDITY:
                await self.protocol.repay_liquidity(user, market, asset, amount)
            else:
                await self.protocol.repay(user, market, asset, amount)
        except Exception as e:
            # Funds already sit in custody; this still counts as a failed attempt
            logger.error(
                "Protocol call failed after transfer",
                user=user,
                market=market,
                action=plan.action.value,
                amount=amount,
                error=str(e),
            )
            return self._fail(plan, RemediationFailure.PROTOCOL_CALL_FAILED, str(e), funds_moved=True)

        logger.info(
            "Remediation executed",
            user=user,
            market=market,
            action=plan.action.value,
            amount=amount,
        )
        return RemediationResult(
            action=plan.action,
            requested_amount=amount,
            amount_used=amount,
            funds_moved=True,
        )
