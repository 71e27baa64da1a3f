"""
Unit tests for Kafka plumbing and cross-domain messages.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from src.liqshield.config import KafkaSettings
from src.liqshield.shared.bus import KafkaPublisher, _serialize, create_consumer
from src.liqshield.shared.messages import (
    CommandKind,
    ProtectionCommand,
    ProtocolEventKind,
)


class TestKafkaPublisher:
    """Test KafkaPublisher with a mocked producer."""

    @pytest.mark.asyncio
    async def test_send_before_start(self):
        publisher = KafkaPublisher(KafkaSettings())

        with pytest.raises(RuntimeError):
            await publisher.send("protection_commands", {"kind": "CHECK_ALL"})

    @pytest.mark.asyncio
    async def test_start_send_stop(self):
        with patch('src.liqshield.shared.bus.AIOKafkaProducer') as producer_cls:
            producer = producer_cls.return_value
            producer.start = AsyncMock()
            producer.send = AsyncMock()
            producer.stop = AsyncMock()

            publisher = KafkaPublisher(KafkaSettings(bootstrap_servers="kafka:29092"))
            await publisher.start()
            await publisher.send("protection_commands", {"kind": "CHECK_ALL"})
            await publisher.stop()

        assert producer_cls.call_args.kwargs["bootstrap_servers"] == "kafka:29092"
        producer.send.assert_awaited_once_with("protection_commands", value={"kind": "CHECK_ALL"})
        producer.stop.assert_awaited_once()

    def test_create_consumer(self):
        with patch('src.liqshield.shared.bus.AIOKafkaConsumer') as consumer_cls:
            create_consumer(KafkaSettings(), "monitor", "protocol_events", "cycle_completions")

        args, kwargs = consumer_cls.call_args
        assert args == ("protocol_events", "cycle_completions")
        assert kwargs["group_id"] == "liqshield-monitor"


def test_serialize_pydantic_message():
    command = ProtectionCommand(kind=CommandKind.EMERGENCY_CHECK, user="alice", market="WETH-USDC", sender="m")

    data = json.loads(_serialize(command))

    assert data["kind"] == "EMERGENCY_CHECK"
    assert data["command_id"] == command.command_id
    assert ProtectionCommand.model_validate(data) == command


def test_commands_get_unique_ids():
    first = ProtectionCommand(kind=CommandKind.CHECK_ALL, sender="m")
    second = ProtectionCommand(kind=CommandKind.CHECK_ALL, sender="m")
    assert first.command_id != second.command_id


@pytest.mark.parametrize("kind,increasing,decreasing", [
    (ProtocolEventKind.BORROW, True, False),
    (ProtocolEventKind.BORROW_LIQUIDITY, True, False),
    (ProtocolEventKind.WITHDRAW, True, False),
    (ProtocolEventKind.REPAY, False, True),
    (ProtocolEventKind.REPAY_LIQUIDITY, False, True),
    (ProtocolEventKind.DEPOSIT, False, True),
    (ProtocolEventKind.LIQUIDATE, False, False),
])
def test_event_direction(kind, increasing, decreasing):
    assert kind.is_risk_increasing is increasing
    assert kind.is_risk_decreasing is decreasing
