"""
In-process lending protocol and token ledger for paper mode.
"""

from collections import defaultdict
from typing import Dict, List, Set, Tuple

from ..logging import get_logger
from ..shared.errors import DataFetchError
from .client import LendingProtocol, TokenLedger
from .models import PositionSnapshot

logger = get_logger(__name__)


class ProtocolCallRejected(Exception):
    """The simulated protocol refused an action."""


class SimulatedProtocol(LendingProtocol, TokenLedger):
    """Keeps positions, balances and allowances in memory.

    Markets are named "{X}-{Y}"; depositing or repaying token X touches the
    X class of the position, token Y the Y class.
    """

    def __init__(self, custody: str = "protocol-custody"):
        self._custody = custody
        self.positions: Dict[Tuple[str, str], PositionSnapshot] = {}
        self.balances: Dict[Tuple[str, str], float] = defaultdict(float)
        self.allowances: Dict[Tuple[str, str, str], float] = defaultdict(float)

        # Failure injection
        self.unreadable: Set[Tuple[str, str]] = set()
        self.reject_actions = False
        self.reject_transfers = False
        self.actions: List[dict] = []

    @property
    def custody_address(self) -> str:
        return self._custody

    def set_position(self, snapshot: PositionSnapshot):
        self.positions[(snapshot.user, snapshot.market)] = snapshot

    def fund(self, asset: str, owner: str, amount: float, spender: str = None, allowance: float = None):
        """Credit a balance and optionally grant an allowance."""
        self.balances[(asset, owner)] += amount
        if spender is not None:
            self.allowances[(asset, owner, spender)] = amount if allowance is None else allowance

    async def get_position(self, user: str, market: str) -> PositionSnapshot:
        if (user, market) in self.unreadable:
            raise DataFetchError("Simulated read failure", user=user, market=market)
        snapshot = self.positions.get((user, market))
        if snapshot is None:
            return PositionSnapshot(user=user, market=market)
        return snapshot.model_copy()

    def _token_class(self, market: str, asset: str) -> str:
        token_x, _, token_y = market.partition("-")
        if asset == token_x:
            return "x"
        if asset == token_y:
            return "y"
        raise ProtocolCallRejected(f"Asset {asset} is not part of market {market}")

    def _mutate(self, user: str, market: str, field: str, delta: float):
        snapshot = self.positions.get((user, market)) or PositionSnapshot(user=user, market=market)
        value = max(0.0, getattr(snapshot, field) + delta)
        self.positions[(user, market)] = snapshot.model_copy(update={field: value})

    def _record(self, action: str, user: str, market: str, asset: str, amount: float):
        if self.reject_actions:
            raise ProtocolCallRejected(f"Simulated {action} rejected")
        self.actions.append(
            {"action": action, "user": user, "market": market, "asset": asset, "amount": amount}
        )

    async def deposit(self, user: str, market: str, asset: str, amount: float) -> None:
        self._record("deposit", user, market, asset, amount)
        self._mutate(user, market, f"deposit_{self._token_class(market, asset)}", amount)

    async def repay(self, user: str, market: str, asset: str, amount: float) -> None:
        self._record("repay", user, market, asset, amount)
        self._mutate(user, market, f"borrow_{self._token_class(market, asset)}", -amount)

    async def repay_liquidity(self, user: str, market: str, asset: str, amount: float) -> None:
        self._record("repay_liquidity", user, market, asset, amount)
        self._mutate(user, market, "borrow_l", -amount)

    async def balance_of(self, asset: str, owner: str) -> float:
        return self.balances[(asset, owner)]

    async def allowance(self, asset: str, owner: str, spender: str) -> float:
        return self.allowances[(asset, owner, spender)]

    async def transfer_from(self, asset: str, owner: str, recipient: str, amount: float) -> bool:
        if self.reject_transfers or self.balances[(asset, owner)] < amount:
            return False
        self.balances[(asset, owner)] -= amount
        self.balances[(asset, recipient)] += amount
        logger.debug("Simulated transfer", asset=asset, owner=owner, recipient=recipient, amount=amount)
        return True
