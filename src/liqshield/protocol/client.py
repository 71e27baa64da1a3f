"""
Interfaces of the external collaborators the protection domain depends on.
"""

from abc import ABC, abstractmethod

from .models import PositionSnapshot


class LendingProtocol(ABC):
    """Read and action surface of the lending protocol."""

    @abstractmethod
    async def get_position(self, user: str, market: str) -> PositionSnapshot:
        """Return the user's raw position. Raises DataFetchError on failure."""

    @abstractmethod
    async def deposit(self, user: str, market: str, asset: str, amount: float) -> None:
        """Deposit `amount` of `asset` as collateral on behalf of `user`."""

    @abstractmethod
    async def repay(self, user: str, market: str, asset: str, amount: float) -> None:
        """Repay token debt on behalf of `user`."""

    @abstractmethod
    async def repay_liquidity(self, user: str, market: str, asset: str, amount: float) -> None:
        """Repay liquidity-class debt on behalf of `user`."""

    @property
    @abstractmethod
    def custody_address(self) -> str:
        """Address that receives protection funds before a protocol call."""


class TokenLedger(ABC):
    """Fungible token transfer/approval primitive."""

    @abstractmethod
    async def balance_of(self, asset: str, owner: str) -> float:
        """Balance of `owner` in `asset`."""

    @abstractmethod
    async def allowance(self, asset: str, owner: str, spender: str) -> float:
        """Amount `spender` may move out of `owner`'s balance."""

    @abstractmethod
    async def transfer_from(self, asset: str, owner: str, recipient: str, amount: float) -> bool:
        """Move funds using a pre-granted allowance. Returns False when the token rejects it."""
