"""
Monitor service: observes protocol events and timer ticks, feeds the dispatcher.
"""

import asyncio
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError

from ..config import Settings
from ..logging import get_logger
from ..shared.bus import KafkaPublisher, create_consumer
from ..shared.messages import CycleCompleted, ProtectionCommand, ProtocolEvent
from ..shared.storage import StateStorage, create_storage
from .dispatcher import EventDispatcher

logger = get_logger(__name__)


class MonitorService:
    """Monitor-domain service."""

    def __init__(
        self,
        config: Settings,
        storage: Optional[StateStorage] = None,
        publisher: Optional[KafkaPublisher] = None,
    ):
        self.config = config
        self.publisher = publisher
        self.dispatcher = EventDispatcher(
            config=config.dispatcher,
            command_sink=self.send_command,
            storage=storage if storage is not None else create_storage(config.redis),
        )

        # Kafka clients
        self.consumer: Optional[AIOKafkaConsumer] = None

        # Service state
        self.running = False
        self.events_received = 0
        self.completions_received = 0

    async def start(self):
        """Start the monitor service."""
        logger.info("Starting Monitor service...")

        self.consumer = create_consumer(
            self.config.kafka,
            "monitor",
            self.config.kafka.topic_protocol_events,
            self.config.kafka.topic_cycle_completions,
        )
        if self.publisher is None:
            self.publisher = KafkaPublisher(self.config.kafka)

        await self.consumer.start()
        await self.publisher.start()

        self.running = True

        await asyncio.gather(
            self.process_messages(),
            self.timer_loop(),
        )

    async def process_messages(self):
        """Process incoming Kafka messages."""
        async for msg in self.consumer:
            if not self.running:
                break

            try:
                if msg.topic == self.config.kafka.topic_protocol_events:
                    await self.handle_protocol_event(msg.value)
                elif msg.topic == self.config.kafka.topic_cycle_completions:
                    self.handle_cycle_completed(msg.value)
            except Exception as e:
                logger.error("Error processing message", topic=msg.topic, error=str(e))

    async def handle_protocol_event(self, data: Dict[str, Any]):
        try:
            event = ProtocolEvent.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed protocol event dropped", error=str(e))
            return None
        self.events_received += 1
        return await self.dispatcher.on_protocol_event(event)

    def handle_cycle_completed(self, data: Dict[str, Any]) -> bool:
        try:
            completed = CycleCompleted.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed completion dropped", error=str(e))
            return False
        self.completions_received += 1
        return self.dispatcher.on_cycle_completed(completed)

    async def timer_loop(self):
        """Emit a tick every tick interval."""
        while self.running:
            try:
                await self.dispatcher.on_tick()
                await asyncio.sleep(self.config.dispatcher.tick_interval_seconds)
            except Exception as e:
                logger.error("Error in timer loop", error=str(e))
                await asyncio.sleep(self.config.dispatcher.tick_interval_seconds)

    async def send_command(self, command: ProtectionCommand):
        if self.publisher is None:
            raise RuntimeError("Publisher not started")
        await self.publisher.send(self.config.kafka.topic_protection_commands, command)

    async def stop(self):
        """Stop the monitor service."""
        logger.info("Stopping Monitor service...")
        self.running = False

        if self.consumer:
            await self.consumer.stop()
        if self.publisher:
            await self.publisher.stop()

    def get_current_state(self) -> Dict[str, Any]:
        return {
            'dispatcher': self.dispatcher.status().model_dump(mode="json"),
            'events_received': self.events_received,
            'completions_received': self.completions_received,
        }
