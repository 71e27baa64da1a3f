"""Lending protocol collaborators."""

from .client import LendingProtocol, TokenLedger
from .gateway import GatewayClient
from .models import PositionSnapshot, ProtocolAction
from .simulated import SimulatedProtocol

__all__ = [
    "LendingProtocol",
    "TokenLedger",
    "GatewayClient",
    "PositionSnapshot",
    "ProtocolAction",
    "SimulatedProtocol",
]
