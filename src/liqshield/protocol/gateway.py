"""
REST client for the protocol gateway that fronts the lending protocol and
token contracts.
"""

from typing import Any, Dict, Optional

import httpx

from ..config import ProtocolSettings
from ..logging import get_logger
from ..shared.errors import DataFetchError
from .client import LendingProtocol, TokenLedger
from .models import PositionSnapshot, ProtocolAction

logger = get_logger(__name__)


class GatewayClient(LendingProtocol, TokenLedger):
    """Async REST client implementing both protocol and token interfaces."""

    def __init__(self, config: ProtocolSettings, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.base_url = config.gateway_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=config.request_timeout)

    @property
    def custody_address(self) -> str:
        return self.config.custody_address

    async def close(self):
        await self.client.aclose()

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Gateway read failed", endpoint=endpoint, error=str(e))
            raise DataFetchError(f"Gateway read failed for {endpoint}: {e}") from e

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        response = await self.client.post(url, json=payload)
        response.raise_for_status()
        return response.json()

    async def get_position(self, user: str, market: str) -> PositionSnapshot:
        data = await self._get(f"/markets/{market}/positions/{user}")
        try:
            return PositionSnapshot(user=user, market=market, **data)
        except ValueError as e:
            raise DataFetchError(f"Malformed position payload: {e}", user=user, market=market) from e

    async def _act(self, action: ProtocolAction, user: str, market: str, asset: str, amount: float) -> None:
        result = await self._post(
            f"/markets/{market}/{action.value}",
            {"on_behalf_of": user, "asset": asset, "amount": amount},
        )
        logger.info(
            "Protocol action submitted",
            action=action.value,
            user=user,
            market=market,
            amount=amount,
            tx_hash=result.get("tx_hash"),
        )

    async def deposit(self, user: str, market: str, asset: str, amount: float) -> None:
        await self._act(ProtocolAction.DEPOSIT, user, market, asset, amount)

    async def repay(self, user: str, market: str, asset: str, amount: float) -> None:
        await self._act(ProtocolAction.REPAY, user, market, asset, amount)

    async def repay_liquidity(self, user: str, market: str, asset: str, amount: float) -> None:
        await self._act(ProtocolAction.REPAY_LIQUIDITY, user, market, asset, amount)

    async def balance_of(self, asset: str, owner: str) -> float:
        data = await self._get(f"/tokens/{asset}/balances/{owner}")
        return float(data.get("balance", 0))

    async def allowance(self, asset: str, owner: str, spender: str) -> float:
        data = await self._get(f"/tokens/{asset}/allowances/{owner}", params={"spender": spender})
        return float(data.get("allowance", 0))

    async def transfer_from(self, asset: str, owner: str, recipient: str, amount: float) -> bool:
        result = await self._post(
            f"/tokens/{asset}/transfer_from",
            {"owner": owner, "recipient": recipient, "amount": amount,
             "spender": self.config.executor_address},
        )
        return bool(result.get("success", False))
