"""
Protection ledger: the per-(user, market) subscription store.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..logging import get_logger
from ..shared.errors import (
    InvalidAsset,
    InvalidMarket,
    NotSubscribed,
    TargetNotAboveThreshold,
    ThresholdTooLow,
    ZeroMaxAmount,
)
from ..shared.storage import StateStorage
from .models import SubscribeRequest, Subscription

logger = get_logger(__name__)


def validate_subscription_params(request: SubscribeRequest, supported_markets: Dict[str, List[str]]):
    """Reject bad subscribe parameters. Raises a SubscriptionValidationError subclass."""
    if not request.market or request.market not in supported_markets:
        raise InvalidMarket(request.market)
    if request.health_factor_threshold <= 1.0:
        raise ThresholdTooLow(request.health_factor_threshold)
    if request.target_health_factor <= request.health_factor_threshold:
        raise TargetNotAboveThreshold(request.health_factor_threshold, request.target_health_factor)
    if not request.protection_asset or request.protection_asset not in supported_markets[request.market]:
        raise InvalidAsset(request.protection_asset, request.market)
    if request.max_protection_amount <= 0:
        raise ZeroMaxAmount()


class ProtectionLedger:
    """Owns subscriptions. Only active subscriptions are stored or indexed."""

    def __init__(self, storage: Optional[StateStorage] = None):
        self.storage = storage
        self._subscriptions: Dict[Tuple[str, str], Subscription] = {}
        self._user_markets: Dict[str, Set[str]] = {}

        if self.storage:
            self._restore()

    def _restore(self):
        restored = 0
        for data in self.storage.load_subscriptions().values():
            subscription = Subscription.model_validate(data)
            if subscription.active:
                self._index(subscription)
                restored += 1
        logger.info("Restored subscriptions", count=restored)

    def _index(self, subscription: Subscription):
        self._subscriptions[(subscription.user, subscription.market)] = subscription
        self._user_markets.setdefault(subscription.user, set()).add(subscription.market)

    def _persist(self, subscription: Subscription):
        if self.storage:
            self.storage.save_subscription(
                subscription.user, subscription.market, subscription.model_dump(mode="json")
            )

    def add(self, request: SubscribeRequest, now: Optional[datetime] = None) -> Subscription:
        """Create or update a subscription. Updates keep created_at and last_action_at."""
        now = now or datetime.utcnow()
        existing = self._subscriptions.get((request.user, request.market))

        subscription = Subscription(
            user=request.user,
            market=request.market,
            protection_type=request.protection_type,
            health_factor_threshold=request.health_factor_threshold,
            target_health_factor=request.target_health_factor,
            protection_asset=request.protection_asset,
            max_protection_amount=request.max_protection_amount,
            last_action_at=existing.last_action_at if existing else None,
            created_at=existing.created_at if existing else now,
        )
        self._index(subscription)
        self._persist(subscription)

        logger.info(
            "Subscription updated" if existing else "Subscription created",
            user=request.user,
            market=request.market,
            protection_type=request.protection_type.value,
        )
        return subscription

    def remove(self, user: str, market: str) -> Subscription:
        subscription = self._subscriptions.pop((user, market), None)
        if subscription is None:
            raise NotSubscribed(user, market)

        markets = self._user_markets.get(user)
        if markets is not None:
            markets.discard(market)
            if not markets:
                del self._user_markets[user]

        if self.storage:
            self.storage.delete_subscription(user, market)

        logger.info("Subscription removed", user=user, market=market)
        return subscription.model_copy(update={"active": False})

    def get(self, user: str, market: str) -> Optional[Subscription]:
        return self._subscriptions.get((user, market))

    def markets_for(self, user: str) -> Set[str]:
        return set(self._user_markets.get(user, ()))

    def active(self) -> Iterator[Subscription]:
        """Snapshot iteration; safe against mutation during a batch."""
        return iter(list(self._subscriptions.values()))

    def active_count(self) -> int:
        return len(self._subscriptions)

    def record_action(self, user: str, market: str, when: Optional[datetime] = None):
        subscription = self._subscriptions.get((user, market))
        if subscription is None:
            return
        subscription.last_action_at = when or datetime.utcnow()
        self._persist(subscription)

    def in_cooldown(self, subscription: Subscription, window_seconds: int, now: Optional[datetime] = None) -> bool:
        if subscription.last_action_at is None:
            return False
        now = now or datetime.utcnow()
        return now < subscription.last_action_at + timedelta(seconds=window_seconds)
