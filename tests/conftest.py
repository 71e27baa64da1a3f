"""Shared pytest fixtures and configuration."""

from datetime import datetime, timedelta

import pytest

from src.liqshield.config import DispatcherSettings, ProtectionSettings
from src.liqshield.protocol.models import PositionSnapshot
from src.liqshield.protocol.simulated import SimulatedProtocol

EXECUTOR = "liqshield-executor"
MARKET = "WETH-USDC"


class FakeClock:
    """Manually advanced clock for time-dependent state machines."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def protection_config():
    return ProtectionSettings()


@pytest.fixture
def dispatcher_config():
    return DispatcherSettings()


@pytest.fixture
def protocol():
    """Simulated protocol with one borrower at health factor ~1.11."""
    sim = SimulatedProtocol()
    sim.set_position(PositionSnapshot(user="alice", market=MARKET, deposit_x=1000.0, borrow_y=900.0))
    sim.fund("WETH", "alice", 1000.0, spender=EXECUTOR)
    return sim
