"""
Event dispatcher: decides when the protection domain should run a check.

States: Idle <-> CycleInFlight. The in-flight flag is set only by the
periodic path and cleared by a CHECK_ALL completion signal or an operator
force-clear once stale. Liquidation and position-change dispatch are rate
limited by the shared emergency clock:

    liquidation        30s, independent of the in-flight flag
    risk-increasing    30s, suppressed while a cycle is in flight
    risk-decreasing    60s, suppressed while a cycle is in flight
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from ..config import DispatcherSettings
from ..logging import get_logger
from ..shared.errors import DispatchStarvationError, ForceClearRefused
from ..shared.messages import CommandKind, CycleCompleted, ProtectionCommand, ProtocolEvent, ProtocolEventKind
from ..shared.storage import StateStorage
from . import metrics
from .models import DispatchDecision, DispatcherStatus, DispatchState

logger = get_logger(__name__)

CommandSink = Callable[[ProtectionCommand], Awaitable[None]]


class EventDispatcher:
    """Single-writer owner of DispatchState."""

    def __init__(
        self,
        config: DispatcherSettings,
        command_sink: CommandSink,
        storage: Optional[StateStorage] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config
        self.command_sink = command_sink
        self.storage = storage
        self.clock = clock

        self.periodic_interval = timedelta(seconds=config.periodic_interval_seconds)
        self.emergency_cooldown = timedelta(seconds=config.emergency_cooldown_seconds)
        self.risk_decreasing_cooldown = timedelta(seconds=config.risk_decreasing_cooldown_seconds)
        self.stale_after = self.periodic_interval * config.stale_multiplier

        self.state = self._restore() or DispatchState(monitored_markets=set(config.monitored_markets))
        metrics.cycle_in_flight.set(int(self.state.cycle_in_flight))

    def _restore(self) -> Optional[DispatchState]:
        if not self.storage:
            return None
        data = self.storage.load_dispatch_state()
        if data is None:
            return None
        state = DispatchState.model_validate(data)
        logger.info(
            "Restored dispatcher state",
            cycle_in_flight=state.cycle_in_flight,
            monitored_markets=len(state.monitored_markets),
        )
        return state

    def _persist(self):
        metrics.cycle_in_flight.set(int(self.state.cycle_in_flight))
        if self.storage:
            self.storage.save_dispatch_state(self.state.model_dump(mode="json"))

    def _ignore(self, source: str, decision: DispatchDecision) -> DispatchDecision:
        metrics.inputs_ignored.labels(source=source, decision=decision.value).inc()
        logger.debug("Input ignored", source=source, decision=decision.value)
        return decision

    async def _send(self, command: ProtectionCommand) -> bool:
        try:
            await self.command_sink(command)
        except Exception as e:
            logger.error("Failed to queue command", kind=command.kind.value, error=str(e))
            return False
        metrics.commands_dispatched.labels(kind=command.kind.value).inc()
        logger.info(
            "Command dispatched",
            kind=command.kind.value,
            command_id=command.command_id,
            user=command.user,
            market=command.market,
        )
        return True

    def _command(self, kind: CommandKind, user: Optional[str] = None, market: Optional[str] = None) -> ProtectionCommand:
        return ProtectionCommand(
            kind=kind,
            user=user,
            market=market,
            sender=self.config.sender_id,
            issued_at=self.clock(),
        )

    # Periodic path

    async def _start_cycle(self, now: datetime) -> DispatchDecision:
        command = self._command(CommandKind.CHECK_ALL)
        self.state.cycle_in_flight = True
        self.state.pending_command_id = command.command_id
        self.state.last_periodic_check = now
        self._persist()

        if not await self._send(command):
            # Nothing left the process; do not wait for a completion that cannot come
            self.state.cycle_in_flight = False
            self.state.pending_command_id = None
            self._persist()
            return DispatchDecision.SEND_FAILED
        return DispatchDecision.DISPATCHED

    async def on_tick(self) -> DispatchDecision:
        now = self.clock()
        if self.state.cycle_in_flight:
            if self.is_stale(now):
                logger.warning(
                    "Cycle in flight past stale threshold",
                    in_flight_seconds=self._in_flight_seconds(now),
                )
            return self._ignore("tick", DispatchDecision.IGNORED_IN_FLIGHT)

        last = self.state.last_periodic_check
        if last is not None and now < last + self.periodic_interval:
            return self._ignore("tick", DispatchDecision.IGNORED_INTERVAL)

        return await self._start_cycle(now)

    def on_cycle_completed(self, completed: CycleCompleted) -> bool:
        """Clear the in-flight flag. Returns True when the flag was cleared."""
        if completed.kind != CommandKind.CHECK_ALL or not self.state.cycle_in_flight:
            return False

        pending = self.state.pending_command_id
        if completed.command_id and pending and completed.command_id != pending:
            logger.info("Ignoring completion of a superseded cycle", command_id=completed.command_id)
            return False

        self.state.cycle_in_flight = False
        self.state.pending_command_id = None
        self._persist()
        logger.info(
            "Cycle completed",
            checked=completed.checked,
            executed=completed.executed,
            failed=completed.failed,
        )
        return True

    # Event path

    async def on_protocol_event(self, event: ProtocolEvent) -> DispatchDecision:
        now = self.clock()
        source = event.kind.value.lower()

        if event.market not in self.state.monitored_markets:
            return self._ignore(source, DispatchDecision.IGNORED_UNMONITORED)

        last_emergency = self.state.last_emergency_check

        if event.kind == ProtocolEventKind.LIQUIDATE:
            if last_emergency is not None and now < last_emergency + self.emergency_cooldown:
                return self._ignore(source, DispatchDecision.IGNORED_COOLDOWN)

            self.state.last_emergency_check = now
            self._persist()
            command = self._command(CommandKind.EMERGENCY_CHECK, event.user, event.market)
            sent = await self._send(command)
            return DispatchDecision.DISPATCHED if sent else DispatchDecision.SEND_FAILED

        if event.kind.is_risk_increasing:
            window = self.emergency_cooldown
        else:
            window = self.risk_decreasing_cooldown

        if self.state.cycle_in_flight:
            return self._ignore(source, DispatchDecision.IGNORED_IN_FLIGHT)
        if last_emergency is not None and now < last_emergency + window:
            return self._ignore(source, DispatchDecision.IGNORED_COOLDOWN)

        command = self._command(CommandKind.POSITION_CHANGE_CHECK, event.user, event.market)
        sent = await self._send(command)
        return DispatchDecision.DISPATCHED if sent else DispatchDecision.SEND_FAILED

    # Administrative surface

    def add_market(self, market: str) -> bool:
        if market in self.state.monitored_markets:
            return False
        self.state.monitored_markets.add(market)
        self._persist()
        logger.info("Market monitored", market=market)
        return True

    def remove_market(self, market: str) -> bool:
        if market not in self.state.monitored_markets:
            return False
        self.state.monitored_markets.discard(market)
        self._persist()
        logger.info("Market no longer monitored", market=market)
        return True

    async def force_cycle(self) -> DispatchDecision:
        """Start a batch cycle now, ignoring the periodic interval."""
        if self.state.cycle_in_flight:
            return self._ignore("manual", DispatchDecision.IGNORED_IN_FLIGHT)
        return await self._start_cycle(self.clock())

    def force_clear(self) -> bool:
        """Clear a stale in-flight flag. Returns False when nothing was in flight."""
        now = self.clock()
        if not self.state.cycle_in_flight:
            return False
        if not self.is_stale(now):
            raise ForceClearRefused(self._in_flight_seconds(now), self.stale_after.total_seconds())

        logger.warning(
            "Force-clearing stale cycle",
            pending_command_id=self.state.pending_command_id,
            in_flight_seconds=self._in_flight_seconds(now),
        )
        self.state.cycle_in_flight = False
        self.state.pending_command_id = None
        self._persist()
        metrics.force_clears.inc()
        return True

    def _in_flight_seconds(self, now: datetime) -> Optional[float]:
        if not self.state.cycle_in_flight or self.state.last_periodic_check is None:
            return None
        return (now - self.state.last_periodic_check).total_seconds()

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        seconds = self._in_flight_seconds(now or self.clock())
        return seconds is not None and seconds > self.stale_after.total_seconds()

    def check_starvation(self):
        """Raise DispatchStarvationError when the in-flight flag is stale."""
        now = self.clock()
        if self.is_stale(now):
            seconds = self._in_flight_seconds(now)
            raise DispatchStarvationError(
                f"No completion signal for {seconds:.0f}s; force-clear required",
                in_flight_seconds=seconds,
            )

    def status(self) -> DispatcherStatus:
        now = self.clock()
        return DispatcherStatus(
            cycle_in_flight=self.state.cycle_in_flight,
            in_flight_seconds=self._in_flight_seconds(now),
            stale=self.is_stale(now),
            last_periodic_check=self.state.last_periodic_check,
            last_emergency_check=self.state.last_emergency_check,
            monitored_market_count=len(self.state.monitored_markets),
            monitored_markets=sorted(self.state.monitored_markets),
        )
