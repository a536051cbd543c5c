"""
AgentLifecycle — activation, scheduling and the trigger-service contract.

States::

    Uninitialized ──set_active(True)──▶ Active ──set_active(False)──▶ Inactive
                      (validated)         ▲       emergency_stop()        │
                                          └──────set_active(True)─────────┘

Activation re-runs configuration validation every time and refuses the
transition when it fails. Execution is only allowed while Active and only
when the caller is the agent itself (the trigger service invokes the
agent as itself; nobody else may).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

import structlog

from marketpilot.config import MAX_EXECUTION_INTERVAL
from marketpilot.connectors.base_connector import AgentEndpoint
from marketpilot.connectors.scheduler import TriggerService, encode_invocation
from marketpilot.core.bus import SignalBus
from marketpilot.core.result import Failure, Ok, Result
from marketpilot.errors import (
    AgentInactiveError,
    ConfigurationError,
    ForbiddenInvocationError,
    InsufficientFundsError,
)
from marketpilot.models import AgentStateSnapshot

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass
class AgentState:
    """
    Everything the agent knows about itself. One per agent, never destroyed.

    Configuration fields are changed only through an owner's admin session;
    counters, the in-flight flag and the balance only by the agent's own
    invocations.
    """

    agent_id: str
    owner: str
    execution_interval: int = 30
    max_executions: int = 10
    active: bool = False
    requests_sent: int = 0
    responses_received: int = 0
    request_in_flight: bool = False
    last_request_at: datetime | None = None
    executions: int = 0
    balance: Decimal = ZERO
    schedule_handle: str | None = None
    schedule_registered_tick: int | None = None

    def credit(self, amount: Decimal) -> Decimal:
        if amount < ZERO:
            raise ValueError("credit amount must be non-negative")
        self.balance += amount
        return self.balance

    def debit(self, amount: Decimal) -> Decimal:
        if amount < ZERO:
            raise ValueError("debit amount must be non-negative")
        if amount > self.balance:
            raise InsufficientFundsError(
                f"Balance {self.balance} does not cover {amount}"
            )
        self.balance -= amount
        return self.balance

    def snapshot(self) -> AgentStateSnapshot:
        return AgentStateSnapshot(
            agent_id=self.agent_id,
            owner=self.owner,
            active=self.active,
            requests_sent=self.requests_sent,
            responses_received=self.responses_received,
            last_request_at=self.last_request_at,
            request_in_flight=self.request_in_flight,
            execution_interval=self.execution_interval,
            max_executions=self.max_executions,
            executions=self.executions,
            balance=self.balance,
            schedule_handle=self.schedule_handle,
        )


def schedule_problems(interval: int, max_executions: int) -> list[tuple[str, str]]:
    problems: list[tuple[str, str]] = []
    if not 1 <= interval <= MAX_EXECUTION_INTERVAL:
        problems.append(
            ("execution_interval", f"execution_interval must be in [1, {MAX_EXECUTION_INTERVAL}]")
        )
    if max_executions < 0:
        problems.append(("max_executions", "max_executions must be >= 0"))
    return problems


class AgentLifecycle:
    """Owns the activation state and the agent's registration with the trigger service."""

    def __init__(
        self,
        state: AgentState,
        *,
        bus: SignalBus,
        scheduler: TriggerService | None,
        validator: Callable[[], list[tuple[str, str]]],
        start_offset: int = 1,
        gas_limit: int = 3_000_000,
    ) -> None:
        self.state = state
        self._bus = bus
        self._scheduler = scheduler
        self._validator = validator
        self._start_offset = start_offset
        self._gas_limit = gas_limit
        self._nonce = 0

    # ── Validation gate ──────────────────────────────────────────────

    def configuration_problems(self) -> list[tuple[str, str]]:
        return schedule_problems(self.state.execution_interval, self.state.max_executions) + list(
            self._validator()
        )

    def validate_configuration(self) -> bool:
        """Read-only predicate checked on every activation attempt."""
        return not self.configuration_problems()

    # ── Activation ───────────────────────────────────────────────────

    async def set_active(self, active: bool) -> None:
        """
        Activate or deactivate the agent.

        Raises:
            ConfigurationError: On activation when the configuration is
                invalid. ``active`` stays False.
        """
        if active:
            problems = self.configuration_problems()
            if problems:
                field, message = problems[0]
                logger.warning(
                    "activation_refused",
                    agent_id=self.state.agent_id,
                    problems=[m for _, m in problems],
                )
                raise ConfigurationError(
                    f"Activation refused: {message}",
                    field=field,
                    detail="; ".join(m for _, m in problems),
                )

        changed = self.state.active != active
        self.state.active = active
        if changed:
            topic = "agent.activated" if active else "agent.deactivated"
            logger.info(topic.replace(".", "_"), agent_id=self.state.agent_id)
            await self._bus.publish(topic, {}, sender=self.state.agent_id)

    def update_schedule(self, interval: int, max_executions: int) -> None:
        """
        Change the interval and execution cap used by the next registration.

        Raises:
            ConfigurationError: If the values are out of range (nothing is applied).
        """
        problems = schedule_problems(interval, max_executions)
        if problems:
            field, message = problems[0]
            raise ConfigurationError(message, field=field)
        self.state.execution_interval = interval
        self.state.max_executions = max_executions

    # ── Execution gate ───────────────────────────────────────────────

    def require_executable(self, caller: str) -> None:
        """
        Raises:
            ForbiddenInvocationError: If the call does not originate from the agent.
            AgentInactiveError: If the agent is not active.
        """
        if caller != self.state.agent_id:
            raise ForbiddenInvocationError(
                f"Execution must be self-originated, not from {caller!r}", caller=caller
            )
        if not self.state.active:
            raise AgentInactiveError(f"Agent {self.state.agent_id} is not active")

    # ── Trigger service ──────────────────────────────────────────────

    async def setup_periodic_execution(self, target: AgentEndpoint) -> Result[str]:
        """
        Register the recurring invocation of the execution entry point.

        Starts ``start_offset`` ticks from now, at the configured interval,
        for the configured maximum execution count (0 = unbounded). A
        rejection is returned as a ``Failure``; lifecycle state is untouched.

        An agent holds one schedule: a previously registered one is
        cancelled before the new one is registered.
        """
        if self._scheduler is None:
            return Failure(reason="No trigger service configured", error_code="CONFIGURATION_INVALID", retryable=False)

        if self.state.schedule_handle is not None:
            replaced = await self.cancel_periodic_execution()
            if isinstance(replaced, Failure):
                return replaced
            # Exhausted schedules report False and are simply forgotten.
            self.state.schedule_handle = None
            self.state.schedule_registered_tick = None

        tick = self._scheduler.current_tick
        self._nonce += 1
        try:
            handle = await self._scheduler.schedule_recurring(
                start_tick=tick + self._start_offset,
                target=target,
                value=ZERO,
                payload=encode_invocation(),
                gas_limit=self._gas_limit,
                nonce=self._nonce,
                interval=self.state.execution_interval,
                max_executions=self.state.max_executions,
            )
        except Exception as exc:
            failure = Failure.from_exception(exc)
            logger.warning("schedule_failed", agent_id=self.state.agent_id, **failure.to_dict())
            await self._bus.publish("schedule.failed", failure.to_dict(), sender=self.state.agent_id)
            return failure

        self.state.schedule_handle = handle
        self.state.schedule_registered_tick = tick
        logger.info(
            "schedule_registered",
            agent_id=self.state.agent_id,
            handle=handle,
            interval=self.state.execution_interval,
            max_executions=self.state.max_executions,
        )
        await self._bus.publish(
            "schedule.registered",
            {
                "handle": handle,
                "start_tick": tick + self._start_offset,
                "interval": self.state.execution_interval,
                "max_executions": self.state.max_executions,
            },
            sender=self.state.agent_id,
        )
        return Ok(handle)

    async def cancel_periodic_execution(self) -> Result[bool]:
        handle = self.state.schedule_handle
        if self._scheduler is None or handle is None:
            return Failure(reason="No schedule registered", error_code="NO_SCHEDULE", retryable=False)
        try:
            cancelled = await self._scheduler.cancel(self.state.schedule_registered_tick or 0, handle)
        except Exception as exc:
            failure = Failure.from_exception(exc)
            logger.warning("schedule_cancel_failed", agent_id=self.state.agent_id, **failure.to_dict())
            return failure

        if cancelled:
            self.state.schedule_handle = None
            self.state.schedule_registered_tick = None
            await self._bus.publish("schedule.cancelled", {"handle": handle}, sender=self.state.agent_id)
        return Ok(cancelled)
