"""
Protection service: receives cross-domain commands and runs the orchestrator.
"""

import asyncio
from typing import Any, Dict, List, Optional

from aiokafka import AIOKafkaConsumer
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..logging import get_logger, trace_context
from ..protocol.client import LendingProtocol, TokenLedger
from ..protocol.gateway import GatewayClient
from ..protocol.simulated import SimulatedProtocol
from ..shared.bus import KafkaPublisher, create_consumer
from ..shared.errors import UntrustedSenderError
from ..shared.messages import CommandKind, CycleCompleted, ProtectionCommand
from ..shared.storage import StateStorage, create_storage
from .executor import RemediationExecutor
from .ledger import ProtectionLedger
from .orchestrator import ProtectionOrchestrator

logger = get_logger(__name__)

# Lower runs first; CHECK_ALL runs in the background
COMMAND_PRIORITY = {
    CommandKind.EMERGENCY_CHECK: 0,
    CommandKind.POSITION_CHANGE_CHECK: 1,
    CommandKind.CHECK_ALL: 2,
}


class ProtectionService:
    """Execution-domain service."""

    def __init__(
        self,
        config: Settings,
        protocol: Optional[LendingProtocol] = None,
        tokens: Optional[TokenLedger] = None,
        storage: Optional[StateStorage] = None,
        publisher: Optional[KafkaPublisher] = None,
    ):
        self.config = config

        if protocol is None:
            if config.protection.paper_mode:
                protocol = SimulatedProtocol()
            else:
                protocol = GatewayClient(config.protocol)
        self.protocol = protocol
        self.tokens = tokens or protocol

        self.ledger = ProtectionLedger(storage if storage is not None else create_storage(config.redis))
        self.executor = RemediationExecutor(self.protocol, self.tokens, config.protocol.executor_address)
        self.orchestrator = ProtectionOrchestrator(
            config=config.protection,
            ledger=self.ledger,
            protocol=self.protocol,
            executor=self.executor,
            event_sink=self.publish_event,
        )

        # Kafka clients
        self.consumer: Optional[AIOKafkaConsumer] = None
        self.publisher = publisher

        # Service state
        self.running = False
        self.command_queue: List[ProtectionCommand] = []
        self.batch_task: Optional[asyncio.Task] = None
        self.commands_processed = 0
        self.commands_rejected = 0

    async def start(self):
        """Start the protection service."""
        logger.info("Starting Protection service...")

        self.consumer = create_consumer(
            self.config.kafka, "protection", self.config.kafka.topic_protection_commands
        )
        if self.publisher is None:
            self.publisher = KafkaPublisher(self.config.kafka)

        await self.consumer.start()
        await self.publisher.start()

        self.running = True

        await asyncio.gather(
            self.process_messages(),
            self.command_processing_loop(),
        )

    async def process_messages(self):
        """Process incoming Kafka messages."""
        async for msg in self.consumer:
            if not self.running:
                break

            try:
                self.handle_command(msg.value)
            except Exception as e:
                logger.error("Error processing message", error=str(e))

    def handle_command(self, data: Dict[str, Any]) -> bool:
        """Validate and queue one inbound command. Returns True when queued."""
        try:
            command = ProtectionCommand.model_validate(data)
        except ValidationError as e:
            self.commands_rejected += 1
            logger.warning("Malformed command dropped", error=str(e))
            return False

        if command.sender != self.config.protection.trusted_sender:
            self.commands_rejected += 1
            logger.warning("Command rejected", error=str(UntrustedSenderError(command.sender)))
            return False

        if command.kind != CommandKind.CHECK_ALL and not (command.user and command.market):
            self.commands_rejected += 1
            logger.warning("Targeted command without user/market dropped", command_id=command.command_id)
            return False

        self.command_queue.append(command)
        return True

    async def execute_command(self, command: ProtectionCommand) -> CycleCompleted:
        with trace_context(command.command_id):
            logger.info(
                "Executing command",
                kind=command.kind.value,
                user=command.user,
                market=command.market,
            )
            if command.kind == CommandKind.CHECK_ALL:
                return await self.orchestrator.check_all(command.command_id)
            if command.kind == CommandKind.EMERGENCY_CHECK:
                return await self.orchestrator.emergency_check(command.user, command.market, command.command_id)
            return await self.orchestrator.position_change_check(command.user, command.market, command.command_id)

    @property
    def batch_running(self) -> bool:
        return self.batch_task is not None and not self.batch_task.done()

    def next_command(self) -> Optional[ProtectionCommand]:
        """Pop the most urgent runnable command, oldest first within a priority.

        A queued CHECK_ALL waits while a batch is already running.
        """
        runnable = [
            (COMMAND_PRIORITY[command.kind], index)
            for index, command in enumerate(self.command_queue)
            if not (command.kind == CommandKind.CHECK_ALL and self.batch_running)
        ]
        if not runnable:
            return None
        _, index = min(runnable)
        return self.command_queue.pop(index)

    async def _run_command(self, command: ProtectionCommand):
        try:
            await self.execute_command(command)
            self.commands_processed += 1
        except Exception as e:
            logger.error("Error executing command", command_id=command.command_id, error=str(e))

    async def drain_commands(self):
        """Run every runnable queued command. Targeted checks never wait on a batch."""
        while True:
            command = self.next_command()
            if command is None:
                return
            if command.kind == CommandKind.CHECK_ALL:
                self.batch_task = asyncio.create_task(self._run_command(command))
            else:
                await self._run_command(command)

    async def command_processing_loop(self):
        """Execute queued commands until the service stops."""
        while self.running:
            try:
                await self.drain_commands()
                await asyncio.sleep(0.5)

            except Exception as e:
                logger.error("Error processing commands", error=str(e))

    async def publish_event(self, event: BaseModel):
        """Route orchestrator events to Kafka."""
        if self.publisher is None:
            return

        if isinstance(event, CycleCompleted):
            await self.publisher.send(self.config.kafka.topic_cycle_completions, event)
        await self.publisher.send(self.config.kafka.topic_protection_events, event)

    async def stop(self):
        """Stop the protection service."""
        logger.info("Stopping Protection service...")
        self.running = False

        if self.batch_running:
            self.batch_task.cancel()
        if self.consumer:
            await self.consumer.stop()
        if self.publisher:
            await self.publisher.stop()
        if isinstance(self.protocol, GatewayClient):
            await self.protocol.close()

    def get_current_state(self) -> Dict[str, Any]:
        return {
            'active_subscribers': self.ledger.active_count(),
            'command_queue_size': len(self.command_queue),
            'batch_running': self.batch_running,
            'commands_processed': self.commands_processed,
            'commands_rejected': self.commands_rejected,
            'paper_mode': isinstance(self.protocol, SimulatedProtocol),
            'recent_events': [
                event.model_dump(mode="json") for event in self.orchestrator.event_history[-10:]
            ],
        }
