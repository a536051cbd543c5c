"""
Trigger service — recurring invocation of an agent's execution entry point.

``TriggerService`` is the contract the lifecycle consumes:
``schedule_recurring(...)`` returns an opaque handle and the service later
re-invokes the target; ``cancel(tick, handle)`` stops it.

``TickScheduler`` is the in-process implementation. Time is a monotonically
increasing tick counter; ``advance()`` moves it forward deterministically
(tests, simulation) and ``run()`` drives it from the event loop at a fixed
wall-clock cadence.
"""

from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from uuid import uuid4

import structlog

from marketpilot.connectors.base_connector import AgentEndpoint, BaseConnector
from marketpilot.errors import ServiceRejectedError

logger = structlog.get_logger(__name__)

# The execution entry point takes no arguments, so its encoded invocation is its name.
EXECUTE_ENTRY_POINT = "execute_agent_logic"


def encode_invocation(entry_point: str = EXECUTE_ENTRY_POINT) -> str:
    return entry_point


class TriggerService(BaseConnector):
    """Contract of the periodic-trigger collaborator."""

    @abc.abstractmethod
    async def schedule_recurring(
        self,
        start_tick: int,
        target: AgentEndpoint,
        value: Decimal,
        payload: str,
        gas_limit: int,
        nonce: int,
        interval: int,
        max_executions: int,
    ) -> str:
        """Register a recurring invocation. Returns an opaque schedule handle."""

    @abc.abstractmethod
    async def cancel(self, tick: int, handle: str) -> bool:
        """Cancel a schedule registered at ``tick``. Returns False if unknown."""

    @property
    @abc.abstractmethod
    def current_tick(self) -> int: ...


@dataclass
class Schedule:
    handle: str
    start_tick: int
    target: AgentEndpoint
    value: Decimal
    payload: str
    gas_limit: int
    nonce: int
    interval: int
    max_executions: int
    registered_at: int
    executions: int = 0
    failures: int = 0
    cancelled: bool = False

    @property
    def exhausted(self) -> bool:
        return self.max_executions > 0 and self.executions >= self.max_executions

    def due(self, tick: int) -> bool:
        if self.cancelled or self.exhausted or tick < self.start_tick:
            return False
        return (tick - self.start_tick) % self.interval == 0


class TickScheduler(TriggerService):
    """
    In-process trigger service.

    Invocation failures are recorded on the schedule and logged; they never
    stop the scheduler, mirroring a host that keeps firing on the next
    interval whatever the previous execution did.
    """

    name = "tick_scheduler"
    description = "In-process recurring trigger service driven by a tick counter"

    def __init__(self, *, max_interval: int = 500, start_tick: int = 0) -> None:
        self._max_interval = max_interval
        self._tick = start_tick
        self._schedules: dict[str, Schedule] = {}

    @property
    def current_tick(self) -> int:
        return self._tick

    async def schedule_recurring(
        self,
        start_tick: int,
        target: AgentEndpoint,
        value: Decimal,
        payload: str,
        gas_limit: int,
        nonce: int,
        interval: int,
        max_executions: int,
    ) -> str:
        if start_tick <= self._tick:
            raise ServiceRejectedError(
                f"start tick {start_tick} is not in the future (now {self._tick})",
                connector_name=self.name,
            )
        if not 1 <= interval <= self._max_interval:
            raise ServiceRejectedError(
                f"interval {interval} outside [1, {self._max_interval}]",
                connector_name=self.name,
            )
        if max_executions < 0:
            raise ServiceRejectedError("max_executions must be >= 0", connector_name=self.name)
        if gas_limit <= 0:
            raise ServiceRejectedError("gas_limit must be positive", connector_name=self.name)

        handle = uuid4().hex
        self._schedules[handle] = Schedule(
            handle=handle,
            start_tick=start_tick,
            target=target,
            value=value,
            payload=payload,
            gas_limit=gas_limit,
            nonce=nonce,
            interval=interval,
            max_executions=max_executions,
            registered_at=self._tick,
        )
        logger.info(
            "schedule_registered",
            handle=handle,
            target=target.agent_id,
            start_tick=start_tick,
            interval=interval,
            max_executions=max_executions,
        )
        return handle

    async def cancel(self, tick: int, handle: str) -> bool:
        schedule = self._schedules.get(handle)
        if schedule is None or schedule.cancelled or schedule.registered_at != tick:
            return False
        schedule.cancelled = True
        logger.info("schedule_cancelled", handle=handle)
        return True

    def get(self, handle: str) -> Schedule | None:
        return self._schedules.get(handle)

    # ── Driving time ─────────────────────────────────────────────────

    async def advance(self, ticks: int = 1) -> int:
        """Move time forward, firing every due schedule. Returns invocations made."""
        fired = 0
        for _ in range(ticks):
            self._tick += 1
            for schedule in list(self._schedules.values()):
                if schedule.due(self._tick):
                    await self._fire(schedule)
                    fired += 1
        return fired

    async def run(self, tick_seconds: float, *, stop: asyncio.Event | None = None) -> None:
        """Advance one tick every ``tick_seconds`` until stopped or nothing is left to fire."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.advance(1)
            if not self.has_live_schedules():
                logger.info("scheduler_idle", tick=self._tick)
                return
            try:
                await asyncio.wait_for(stop.wait(), timeout=tick_seconds)
            except asyncio.TimeoutError:
                continue

    def has_live_schedules(self) -> bool:
        return any(not s.cancelled and not s.exhausted for s in self._schedules.values())

    async def _fire(self, schedule: Schedule) -> None:
        schedule.executions += 1
        target = schedule.target
        try:
            # The host invokes the target as itself: calls are self-originated.
            await target.dispatch(schedule.payload, caller=target.agent_id)
        except Exception as exc:
            schedule.failures += 1
            logger.warning(
                "scheduled_invocation_failed",
                handle=schedule.handle,
                tick=self._tick,
                error=str(exc),
                error_type=type(exc).__name__,
            )
