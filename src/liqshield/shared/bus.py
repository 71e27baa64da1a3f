"""
Kafka plumbing shared by both services.
"""

import json
from typing import Any, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from pydantic import BaseModel

from ..config import KafkaSettings
from ..logging import get_logger

logger = get_logger(__name__)


def _serialize(value: Any) -> bytes:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, default=str).encode("utf-8")


class KafkaPublisher:
    """Fire-and-forget publisher for cross-domain messages."""

    def __init__(self, config: KafkaSettings):
        self.config = config
        self.producer: Optional[AIOKafkaProducer] = None

    async def start(self):
        """Start the Kafka producer."""
        self.producer = AIOKafkaProducer(
            bootstrap_servers=self.config.bootstrap_servers,
            value_serializer=_serialize,
            request_timeout_ms=self.config.producer_timeout_ms,
        )
        await self.producer.start()
        logger.info("Kafka publisher started", bootstrap_servers=self.config.bootstrap_servers)

    async def stop(self):
        """Stop the Kafka producer."""
        if self.producer:
            await self.producer.stop()
            logger.info("Kafka publisher stopped")

    async def send(self, topic: str, value: Any):
        """Queue a message for delivery without waiting for the broker ack."""
        if not self.producer:
            raise RuntimeError("Producer not started")

        await self.producer.send(topic, value=value)
        logger.debug("Message queued", topic=topic)


def create_consumer(config: KafkaSettings, group_suffix: str, *topics: str) -> AIOKafkaConsumer:
    """Create a JSON consumer for the given topics."""
    return AIOKafkaConsumer(
        *topics,
        bootstrap_servers=config.bootstrap_servers,
        group_id=f"{config.consumer_group_prefix}-{group_suffix}",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        auto_offset_reset="latest",
        enable_auto_commit=True,
    )
