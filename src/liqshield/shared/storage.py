"""
State storage for persistence and recovery.

Layout:
    {prefix}:subscriptions    hash, field "{user}:{market}" -> subscription JSON
    {prefix}:dispatch_state   string, dispatcher state JSON
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis

from ..logging import get_logger

logger = get_logger(__name__)


def subscription_key(user: str, market: str) -> str:
    return f"{user}:{market}"


class StateStorage(ABC):
    """Abstract base class for ledger and dispatcher state storage."""

    @abstractmethod
    def save_subscription(self, user: str, market: str, data: Dict[str, Any]) -> bool:
        """Persist one subscription."""

    @abstractmethod
    def delete_subscription(self, user: str, market: str) -> bool:
        """Remove one subscription."""

    @abstractmethod
    def load_subscriptions(self) -> Dict[str, Dict[str, Any]]:
        """Load all subscriptions keyed by "{user}:{market}"."""

    @abstractmethod
    def save_dispatch_state(self, data: Dict[str, Any]) -> bool:
        """Persist the dispatcher state record."""

    @abstractmethod
    def load_dispatch_state(self) -> Optional[Dict[str, Any]]:
        """Load the dispatcher state record."""


class RedisStateStorage(StateStorage):
    """Redis-based state storage."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", key_prefix: str = "liqshield",
                 client: Optional[redis.Redis] = None):
        self.redis_client = client or redis.from_url(redis_url, decode_responses=True)
        self.subscriptions_key = f"{key_prefix}:subscriptions"
        self.dispatch_state_key = f"{key_prefix}:dispatch_state"

    def save_subscription(self, user: str, market: str, data: Dict[str, Any]) -> bool:
        try:
            self.redis_client.hset(
                self.subscriptions_key,
                subscription_key(user, market),
                json.dumps(data, default=str),
            )
            return True
        except redis.RedisError as e:
            logger.error("Failed to save subscription", user=user, market=market, error=str(e))
            return False

    def delete_subscription(self, user: str, market: str) -> bool:
        try:
            self.redis_client.hdel(self.subscriptions_key, subscription_key(user, market))
            return True
        except redis.RedisError as e:
            logger.error("Failed to delete subscription", user=user, market=market, error=str(e))
            return False

    def load_subscriptions(self) -> Dict[str, Dict[str, Any]]:
        try:
            raw = self.redis_client.hgetall(self.subscriptions_key)
        except redis.RedisError as e:
            logger.error("Failed to load subscriptions", error=str(e))
            return {}
        return {key: json.loads(value) for key, value in raw.items()}

    def save_dispatch_state(self, data: Dict[str, Any]) -> bool:
        try:
            self.redis_client.set(self.dispatch_state_key, json.dumps(data, default=str))
            return True
        except redis.RedisError as e:
            logger.error("Failed to save dispatch state", error=str(e))
            return False

    def load_dispatch_state(self) -> Optional[Dict[str, Any]]:
        try:
            raw = self.redis_client.get(self.dispatch_state_key)
        except redis.RedisError as e:
            logger.error("Failed to load dispatch state", error=str(e))
            return None
        return json.loads(raw) if raw else None


def create_storage(redis_settings) -> Optional[StateStorage]:
    """Build the configured storage backend, or None when persistence is off."""
    if not redis_settings.enabled:
        return None
    return RedisStateStorage(redis_settings.url, redis_settings.key_prefix)
