"""
Error taxonomy for subscription validation, data fetching and dispatch.

Remediation failures are deliberately absent: they are expected outcomes
and travel as RemediationResult values (see protection.models).
"""

from datetime import datetime
from typing import Optional


class LiqShieldError(Exception):
    """Base exception for LiqShield errors."""

    def __init__(self, message: str, user: Optional[str] = None, market: Optional[str] = None):
        self.user = user
        self.market = market
        self.timestamp = datetime.utcnow()
        super().__init__(message)


class SubscriptionValidationError(LiqShieldError):
    """Rejected subscribe parameters. Never retried."""

    code = "VALIDATION_ERROR"


class InvalidMarket(SubscriptionValidationError):
    code = "INVALID_MARKET"

    def __init__(self, market: str):
        super().__init__(f"Market is not supported: {market!r}", market=market)


class ThresholdTooLow(SubscriptionValidationError):
    code = "THRESHOLD_TOO_LOW"

    def __init__(self, threshold: float):
        self.threshold = threshold
        super().__init__(f"Health factor threshold must be above 1.0 (got {threshold})")


class TargetNotAboveThreshold(SubscriptionValidationError):
    code = "TARGET_NOT_ABOVE_THRESHOLD"

    def __init__(self, threshold: float, target: float):
        self.threshold = threshold
        self.target = target
        super().__init__(
            f"Target health factor {target} must be above threshold {threshold}"
        )


class InvalidAsset(SubscriptionValidationError):
    code = "INVALID_ASSET"

    def __init__(self, asset: str, market: str):
        self.asset = asset
        super().__init__(f"Asset {asset!r} cannot protect market {market!r}", market=market)


class ZeroMaxAmount(SubscriptionValidationError):
    code = "ZERO_MAX_AMOUNT"

    def __init__(self):
        super().__init__("Maximum protection amount must be positive")


class NoBorrowPosition(SubscriptionValidationError):
    code = "NO_BORROW_POSITION"

    def __init__(self, user: str, market: str):
        super().__init__(f"User {user} has no borrow position in {market}", user=user, market=market)


class NotSubscribed(LiqShieldError):
    """Unsubscribe or lookup for a pair with no active subscription."""

    code = "NOT_SUBSCRIBED"

    def __init__(self, user: str, market: str):
        super().__init__(f"User {user} is not subscribed to {market}", user=user, market=market)


class DataFetchError(LiqShieldError):
    """Reading a position from the lending protocol failed."""

    code = "DATA_FETCH_ERROR"


class DispatchStarvationError(LiqShieldError):
    """The periodic in-flight flag is stuck or cannot be cleared."""

    code = "DISPATCH_STARVATION"

    def __init__(self, message: str, in_flight_seconds: Optional[float] = None):
        self.in_flight_seconds = in_flight_seconds
        super().__init__(message)


class UntrustedSenderError(LiqShieldError):
    """A privileged command arrived from an unknown sender."""

    code = "UNTRUSTED_SENDER"

    def __init__(self, sender: Optional[str]):
        self.sender = sender
        super().__init__(f"Command sender {sender!r} is not trusted")


class ForceClearRefused(LiqShieldError):
    """Operator tried to clear an in-flight flag that is not stale yet."""

    code = "FORCE_CLEAR_REFUSED"

    def __init__(self, in_flight_seconds: float, stale_after_seconds: float):
        self.in_flight_seconds = in_flight_seconds
        self.stale_after_seconds = stale_after_seconds
        super().__init__(
            f"Cycle in flight for {in_flight_seconds:.0f}s; can only be cleared after {stale_after_seconds:.0f}s"
        )
