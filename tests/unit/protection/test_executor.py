"""
Unit tests for the remediation executor.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from src.liqshield.protection.executor import RemediationExecutor
from src.liqshield.protection.models import (
    ProtectionType,
    RemediationAction,
    RemediationFailure,
    RemediationPlan,
    Subscription,
)
from src.liqshield.protocol.models import PositionSnapshot
from src.liqshield.protocol.simulated import SimulatedProtocol

EXECUTOR = "liqshield-executor"


@pytest.fixture
def subscription():
    return Subscription(
        user="alice",
        market="WETH-USDC",
        protection_type=ProtectionType.COLLATERAL_ONLY,
        health_factor_threshold=1.2,
        target_health_factor=1.5,
        protection_asset="WETH",
        max_protection_amount=500.0,
    )


@pytest.fixture
def sim():
    protocol = SimulatedProtocol()
    protocol.set_position(PositionSnapshot(user="alice", market="WETH-USDC", deposit_x=1000.0, borrow_x=900.0))
    return protocol


@pytest.fixture
def executor(sim):
    return RemediationExecutor(sim, sim, EXECUTOR)


def plan(action=RemediationAction.DEPOSIT_COLLATERAL, amount=200.0) -> RemediationPlan:
    return RemediationPlan(action=action, amount=amount)


class TestRemediationExecutor:
    """Test transfer-then-act sequencing and failure values."""

    @pytest.mark.asyncio
    async def test_deposit_success(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 300.0, spender=EXECUTOR)

        result = await executor.execute(subscription, plan())

        assert result.success
        assert result.amount_used == 200.0
        assert result.funds_moved
        assert sim.balances[("WETH", "alice")] == pytest.approx(100.0)
        assert sim.balances[("WETH", sim.custody_address)] == pytest.approx(200.0)
        assert sim.actions == [
            {"action": "deposit", "user": "alice", "market": "WETH-USDC", "asset": "WETH", "amount": 200.0}
        ]
        position = await sim.get_position("alice", "WETH-USDC")
        assert position.deposit_x == pytest.approx(1200.0)

    @pytest.mark.asyncio
    async def test_repay_debt(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 300.0, spender=EXECUTOR)

        result = await executor.execute(subscription, plan(RemediationAction.REPAY_DEBT))

        assert result.success
        position = await sim.get_position("alice", "WETH-USDC")
        assert position.borrow_x == pytest.approx(700.0)

    @pytest.mark.asyncio
    async def test_repay_liquidity(self, executor, sim, subscription):
        sim.set_position(PositionSnapshot(user="alice", market="WETH-USDC", deposit_x=100.0, borrow_l=600.0))
        sim.fund("WETH", "alice", 300.0, spender=EXECUTOR)

        result = await executor.execute(subscription, plan(RemediationAction.REPAY_LIQUIDITY))

        assert result.success
        assert sim.actions[0]["action"] == "repay_liquidity"
        position = await sim.get_position("alice", "WETH-USDC")
        assert position.borrow_l == pytest.approx(400.0)

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 100.0, spender=EXECUTOR, allowance=1000.0)

        result = await executor.execute(subscription, plan())

        assert not result.success
        assert result.failure == RemediationFailure.INSUFFICIENT_BALANCE
        assert not result.funds_moved
        assert sim.actions == []

    @pytest.mark.asyncio
    async def test_insufficient_authorization(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 1000.0, spender=EXECUTOR, allowance=50.0)

        result = await executor.execute(subscription, plan())

        assert result.failure == RemediationFailure.INSUFFICIENT_AUTHORIZATION
        assert sim.balances[("WETH", "alice")] == pytest.approx(1000.0)

    @pytest.mark.asyncio
    async def test_transfer_failed(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 1000.0, spender=EXECUTOR)
        sim.reject_transfers = True

        result = await executor.execute(subscription, plan())

        assert result.failure == RemediationFailure.TRANSFER_FAILED
        assert sim.actions == []

    @pytest.mark.asyncio
    async def test_protocol_call_failed_after_transfer(self, executor, sim, subscription):
        sim.fund("WETH", "alice", 1000.0, spender=EXECUTOR)
        sim.reject_actions = True

        result = await executor.execute(subscription, plan())

        assert result.failure == RemediationFailure.PROTOCOL_CALL_FAILED
        assert result.funds_moved
        assert result.amount_used == 0.0
        assert sim.balances[("WETH", "alice")] == pytest.approx(800.0)

    @pytest.mark.asyncio
    async def test_zero_amount_is_noop(self, executor, sim, subscription):
        result = await executor.execute(subscription, plan(amount=0.0))

        assert not result.success
        assert result.failure is None
        assert sim.actions == []

    @pytest.mark.asyncio
    async def test_collaborator_exceptions_become_values(self, subscription):
        tokens = Mock()
        tokens.balance_of = AsyncMock(return_value=1000.0)
        tokens.allowance = AsyncMock(return_value=1000.0)
        tokens.transfer_from = AsyncMock(side_effect=RuntimeError("nonce too low"))
        protocol = Mock()
        protocol.custody_address = "custody"

        result = await RemediationExecutor(protocol, tokens, EXECUTOR).execute(subscription, plan())

        assert result.failure == RemediationFailure.TRANSFER_FAILED

    @pytest.mark.asyncio
    async def test_balance_read_error(self, subscription):
        tokens = Mock()
        tokens.balance_of = AsyncMock(side_effect=RuntimeError("rpc down"))
        protocol = Mock()

        result = await RemediationExecutor(protocol, tokens, EXECUTOR).execute(subscription, plan())

        assert result.failure == RemediationFailure.INSUFFICIENT_BALANCE
        assert "rpc down" in result.detail
