"""
AgentRuntime — the fixed orchestration core of an autonomous agent.

Wires the pieces of one agent together::

    trigger ──▶ execute_agent_logic ──▶ strategy.before_tick
                                     ──▶ strategy.prepare_request
                                     ──▶ gateway.request ──▶ registry.open(id → context)
    ... later, a separate invocation ...
    inference ──▶ on_structured_answer / on_text_answer
                                     ──▶ registry.resolve(id) ──▶ strategy.handle_answer

Invocations of one runtime are processed strictly one at a time. Nothing
survives between a tick and the callback answering it except what the
registry recorded.

Administrative operations go through an ``AdminSession`` obtained from
``admin(caller)``: ownership is checked once, when the session is opened.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Callable

import structlog

from marketpilot.config import AgentSettings
from marketpilot.connectors.base_connector import AgentEndpoint
from marketpilot.connectors.inference import (
    STRUCTURED_CALLBACK,
    TEXT_CALLBACK,
    InferenceService,
)
from marketpilot.connectors.scheduler import EXECUTE_ENTRY_POINT, TriggerService
from marketpilot.core.bus import SignalBus, get_signal_bus
from marketpilot.core.gateway import InferenceGateway, RequestDiscipline
from marketpilot.core.lifecycle import AgentLifecycle, AgentState
from marketpilot.core.registry import RequestRegistry
from marketpilot.core.result import Failure, Result
from marketpilot.core.strategy import AgentStrategy, InvocationContext, Skip
from marketpilot.errors import (
    AgentInactiveError,
    DuplicateRequestError,
    ForbiddenInvocationError,
    MalformedAnswerError,
    UnauthorizedError,
)
from marketpilot.models import AgentStateSnapshot, TickReport, TickStatus
from marketpilot.observability import ANSWERS_TOTAL, TICKS_TOTAL, trace_invocation

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def _structured_fields(payload: Any) -> tuple:
    if not isinstance(payload, (list, tuple)):
        raise MalformedAnswerError(
            f"Structured answer must be a sequence of fields, got {type(payload).__name__}"
        )
    return tuple(payload)


class AgentRuntime(AgentEndpoint):
    """
    One autonomous agent: state, lifecycle, gateway, registry and a strategy.

    Args:
        agent_id: The agent's own identity; the only valid caller of the
            execution entry point.
        owner: Identity with exclusive administrative rights.
        strategy: Decision logic.
        inference: Inference collaborator; its ``service_id`` is the only
            valid caller of the answer callbacks.
        scheduler: Trigger collaborator (optional for manual-only agents).
    """

    def __init__(
        self,
        *,
        agent_id: str,
        owner: str,
        strategy: AgentStrategy,
        inference: InferenceService,
        scheduler: TriggerService | None = None,
        execution_interval: int = 30,
        max_executions: int = 10,
        model_name: str = "gemini-2.5-flash",
        requires_trusted_execution: bool = False,
        callback_gas_limit: int = 500_000,
        execution_gas_limit: int = 3_000_000,
        schedule_start_offset: int = 1,
        bus: SignalBus | None = None,
    ) -> None:
        self.state = AgentState(
            agent_id=agent_id,
            owner=owner,
            execution_interval=execution_interval,
            max_executions=max_executions,
        )
        self.strategy = strategy
        self.bus = bus or get_signal_bus()
        self.registry = RequestRegistry()
        self.gateway = InferenceGateway(inference, self.state, bus=self.bus)
        self.lifecycle = AgentLifecycle(
            self.state,
            bus=self.bus,
            scheduler=scheduler,
            validator=strategy.validate_configuration,
            start_offset=schedule_start_offset,
            gas_limit=execution_gas_limit,
        )
        self.model_name = model_name
        self.requires_trusted_execution = requires_trusted_execution
        self.callback_gas_limit = callback_gas_limit
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: AgentSettings,
        *,
        strategy: AgentStrategy,
        inference: InferenceService,
        scheduler: TriggerService | None = None,
        bus: SignalBus | None = None,
    ) -> "AgentRuntime":
        return cls(
            agent_id=settings.agent_id,
            owner=settings.owner,
            strategy=strategy,
            inference=inference,
            scheduler=scheduler,
            execution_interval=settings.execution_interval,
            max_executions=settings.max_executions,
            model_name=settings.model_name,
            requires_trusted_execution=settings.requires_trusted_execution,
            callback_gas_limit=settings.callback_gas_limit,
            execution_gas_limit=settings.execution_gas_limit,
            schedule_start_offset=settings.schedule_start_offset,
            bus=bus,
        )

    # ── Read-only surface ────────────────────────────────────────────

    @property
    def agent_id(self) -> str:
        return self.state.agent_id

    def validate_configuration(self) -> bool:
        return self.lifecycle.validate_configuration()

    def get_state(self) -> AgentStateSnapshot:
        return self.state.snapshot()

    def admin(self, caller: str) -> "AdminSession":
        """
        Open an administrative session.

        Raises:
            UnauthorizedError: If ``caller`` is not the owner.
        """
        if caller != self.state.owner:
            logger.warning("admin_refused", agent_id=self.agent_id, caller=caller)
            raise UnauthorizedError(
                f"{caller!r} is not the owner of {self.agent_id}", caller=caller
            )
        return AdminSession(self)

    # ── Entry points ─────────────────────────────────────────────────

    async def dispatch(self, entry_point: str, *, caller: str, **kwargs: Any) -> Any:
        """Route an invocation from a collaborator to the matching entry point."""
        if entry_point == EXECUTE_ENTRY_POINT:
            return await self.execute_agent_logic(caller=caller)
        if entry_point == STRUCTURED_CALLBACK:
            return await self.on_structured_answer(caller=caller, **kwargs)
        if entry_point == TEXT_CALLBACK:
            return await self.on_text_answer(caller=caller, **kwargs)
        raise ForbiddenInvocationError(f"Unknown entry point {entry_point!r}", caller=caller)

    async def execute_agent_logic(self, *, caller: str) -> TickReport:
        """
        One tick of the agent.

        Raises:
            ForbiddenInvocationError: If not invoked by the agent itself.
            AgentInactiveError: If the agent is not active.

        Every other failure is reported in the returned ``TickReport``.
        """
        self.lifecycle.require_executable(caller)

        async with self._lock:
            ctx = InvocationContext(self.agent_id, self.state, self.bus, kind="tick")
            with trace_invocation("tick", self.agent_id, invocation_id=ctx.invocation_id):
                report = await self._run_tick(ctx)

            TICKS_TOTAL.labels(agent_id=self.agent_id, outcome=report.status.value).inc()
            ctx.logger.info(
                "tick_completed",
                status=report.status.value,
                reason=report.reason,
                request_id=report.request_id,
            )
            await ctx.emit(
                "tick.completed",
                {
                    "success": report.succeeded,
                    "status": report.status.value,
                    "reason": report.reason,
                    "request_id": report.request_id,
                    "context": report.context,
                    "execution": self.state.executions,
                },
            )
            return report

    async def on_structured_answer(
        self,
        *,
        caller: str,
        request_id: str,
        payload: Any,
        callback_data: str = "",
    ) -> bool:
        """Callback for structured answers. Returns True if the answer was acted on."""
        return await self._deliver(caller, request_id, payload, decode=_structured_fields)

    async def on_text_answer(
        self,
        *,
        caller: str,
        request_id: str,
        payload: Any,
        callback_data: str = "",
    ) -> bool:
        """Callback for unstructured (free-text) answers."""
        return await self._deliver(caller, request_id, payload, decode=str)

    async def send_request(self, prompt: str, context: str = "") -> Result[str]:
        """
        Default request path: an unstructured question on the single-in-flight
        discipline. Only usable from within the agent's own invocations
        (strategy hooks) or by tooling that holds the runtime directly.
        """
        result = await self.gateway.request(
            prompt=prompt,
            model=self.model_name,
            requires_trusted_execution=self.requires_trusted_execution,
            output_schema=None,
            callback=self,
            gas_budget=self.callback_gas_limit,
            context=context,
            discipline=RequestDiscipline.SINGLE_FLIGHT,
        )
        if isinstance(result, Failure):
            return result
        try:
            self.registry.open(result.value, context)
        except DuplicateRequestError as exc:
            self.gateway.complete(result.value)
            return Failure.from_exception(exc)
        return result

    # ── Internals ────────────────────────────────────────────────────

    async def _run_tick(self, ctx: InvocationContext) -> TickReport:
        self.state.executions += 1
        strategy = self.strategy

        try:
            await strategy.before_tick(ctx)
            if (
                strategy.discipline is RequestDiscipline.SINGLE_FLIGHT
                and self.state.request_in_flight
            ):
                return self._report(ctx, TickStatus.NO_ACTION, reason="request_in_flight")
            decision = await strategy.prepare_request(ctx)
        except Exception as exc:
            ctx.logger.error("tick_failed", error=str(exc), error_type=type(exc).__name__, exc_info=True)
            return self._report(ctx, TickStatus.FAILED, reason=f"{type(exc).__name__}: {exc}")

        if isinstance(decision, Skip):
            return self._report(ctx, TickStatus.NO_ACTION, reason=decision.reason)

        result = await self.gateway.request(
            prompt=decision.prompt,
            model=decision.model or self.model_name,
            requires_trusted_execution=(
                self.requires_trusted_execution
                if decision.requires_trusted_execution is None
                else decision.requires_trusted_execution
            ),
            output_schema=decision.output_schema,
            callback=self,
            gas_budget=decision.gas_budget or self.callback_gas_limit,
            context=decision.context,
            discipline=strategy.discipline,
            correlation_id=ctx.invocation_id,
        )
        if isinstance(result, Failure):
            return self._report(
                ctx, TickStatus.FAILED, reason=result.reason, context=decision.context
            )

        request_id = result.value
        try:
            self.registry.open(request_id, decision.context)
        except DuplicateRequestError as exc:
            ctx.logger.error("request_not_recorded", **exc.to_dict())
            return self._report(ctx, TickStatus.FAILED, reason=str(exc), context=decision.context)

        return self._report(
            ctx,
            TickStatus.REQUEST_ISSUED,
            request_id=request_id,
            context=decision.context,
        )

    def _report(
        self,
        ctx: InvocationContext,
        status: TickStatus,
        *,
        reason: str = "",
        request_id: str | None = None,
        context: str | None = None,
    ) -> TickReport:
        return TickReport(
            status=status,
            reason=reason,
            request_id=request_id,
            context=context,
            claimed=ctx.data.get("claimed", ZERO),
            data=dict(ctx.data),
        )

    async def _deliver(
        self,
        caller: str,
        request_id: str,
        payload: Any,
        *,
        decode: Callable[[Any], Any],
    ) -> bool:
        if caller != self.gateway.service_id:
            raise ForbiddenInvocationError(
                f"Answers are only accepted from the inference service, not {caller!r}",
                caller=caller,
            )

        async with self._lock:
            ctx = InvocationContext(self.agent_id, self.state, self.bus, kind="callback")
            with trace_invocation("callback", self.agent_id, request_id=request_id):
                try:
                    context = self.registry.resolve(request_id)
                except DuplicateRequestError as exc:
                    await self._reject_answer(ctx, request_id, exc.to_dict())
                    return False

                self.gateway.complete(request_id)
                self.state.responses_received += 1
                ctx.logger.info("answer_received", request_id=request_id, context=context)
                await ctx.emit("answer.received", {"request_id": request_id, "context": context})

                try:
                    decoded = decode(payload)
                    await self.strategy.handle_answer(ctx, request_id, context, decoded)
                except MalformedAnswerError as exc:
                    await self._reject_answer(ctx, request_id, exc.to_dict(), context=context)
                    return False
                except Exception as exc:
                    ctx.logger.error(
                        "answer_handling_failed",
                        request_id=request_id,
                        error=str(exc),
                        exc_info=True,
                    )
                    await self._reject_answer(
                        ctx,
                        request_id,
                        Failure.from_exception(exc).to_dict(),
                        context=context,
                    )
                    return False

        ANSWERS_TOTAL.labels(agent_id=self.agent_id, outcome="handled").inc()
        return True

    async def _reject_answer(
        self,
        ctx: InvocationContext,
        request_id: str,
        details: dict[str, Any],
        *,
        context: str | None = None,
    ) -> None:
        payload = {**details, "request_id": request_id, "context": context}
        outcome = str(payload.get("error_code", "rejected")).lower()
        ANSWERS_TOTAL.labels(agent_id=self.agent_id, outcome=outcome).inc()
        ctx.logger.warning("answer_rejected", **payload)
        await ctx.emit("answer.rejected", payload)


class AdminSession:
    """
    Owner-only operations on one runtime. Obtain via ``AgentRuntime.admin(caller)``.
    """

    def __init__(self, runtime: AgentRuntime) -> None:
        self._runtime = runtime
        self._state = runtime.state

    async def _changed(self, what: str, **values: Any) -> None:
        logger.info("config_changed", agent_id=self._state.agent_id, what=what, **values)
        await self._runtime.bus.publish(
            "config.changed",
            {"what": what, **{k: str(v) for k, v in values.items()}},
            sender=self._state.agent_id,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def set_active(self, active: bool) -> None:
        await self._runtime.lifecycle.set_active(active)

    async def setup_periodic_execution(self) -> Result[str]:
        return await self._runtime.lifecycle.setup_periodic_execution(self._runtime)

    async def cancel_periodic_execution(self) -> Result[bool]:
        return await self._runtime.lifecycle.cancel_periodic_execution()

    async def update_execution_config(self, interval: int, max_executions: int) -> None:
        """Takes effect at the next ``setup_periodic_execution``."""
        self._runtime.lifecycle.update_schedule(interval, max_executions)
        await self._changed("execution", interval=interval, max_executions=max_executions)

    async def update_strategy_config(self, config: Any) -> None:
        self._runtime.strategy.update_config(config)
        await self._changed("strategy", strategy=self._runtime.strategy.name)

    async def emergency_stop(self) -> None:
        """Deactivate, cancel the schedule and forget every pending request."""
        runtime = self._runtime
        await runtime.lifecycle.set_active(False)
        if self._state.schedule_handle is not None:
            await runtime.lifecycle.cancel_periodic_execution()
        cancelled = runtime.registry.cancel_all()
        runtime.gateway.clear_in_flight()
        logger.warning("emergency_stop", agent_id=self._state.agent_id, cancelled_requests=cancelled)
        await runtime.bus.publish(
            "agent.emergency_stop",
            {"cancelled_requests": cancelled},
            sender=self._state.agent_id,
        )

    async def run_once(self) -> TickReport:
        """Manual single-shot tick; lifecycle errors are reported, not raised."""
        try:
            return await self._runtime.execute_agent_logic(caller=self._state.agent_id)
        except AgentInactiveError as exc:
            return TickReport(status=TickStatus.FAILED, reason=str(exc))

    # ── Funds ────────────────────────────────────────────────────────

    async def deposit(self, amount: Decimal) -> Decimal:
        balance = self._state.credit(amount)
        await self._runtime.bus.publish(
            "funds.deposited",
            {"amount": str(amount), "balance": str(balance)},
            sender=self._state.agent_id,
        )
        return balance

    async def withdraw(self, amount: Decimal) -> Decimal:
        """
        Raises:
            InsufficientFundsError: If the balance does not cover ``amount``.
        """
        balance = self._state.debit(amount)
        await self._runtime.bus.publish(
            "funds.withdrawn",
            {"amount": str(amount), "balance": str(balance)},
            sender=self._state.agent_id,
        )
        return balance
