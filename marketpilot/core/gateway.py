"""
InferenceGateway — issues inference requests without ever throwing.

Every request goes through ``request()``, which:
  - refuses to issue a second request on the single-in-flight path while
    one is outstanding,
  - calls the inference service with the agent as callback target,
  - on success bumps ``requests_sent`` / ``last_request_at`` and, on the
    single-in-flight path, raises the in-flight flag until ``complete()``,
  - on any failure rolls local state back and returns a ``Failure``.

Two request disciplines are supported:

  ``SINGLE_FLIGHT`` — at most one outstanding request per agent. A request
      whose answer never arrives blocks the path until an owner clears it
      (emergency stop).
  ``KEYED`` — requests are correlated by context (e.g. a market id) and
      any number may be outstanding; consumers guard their own invariants
      (the betting engine's one-position-per-market check).
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

import structlog

from marketpilot.connectors.base_connector import AgentEndpoint
from marketpilot.connectors.inference import (
    STRUCTURED_CALLBACK,
    TEXT_CALLBACK,
    InferenceService,
)
from marketpilot.core.bus import SignalBus
from marketpilot.core.lifecycle import AgentState
from marketpilot.core.result import Failure, Ok, Result
from marketpilot.schema import schema_fields
from marketpilot.errors import InvalidOutputSchemaError, RequestInFlightError
from marketpilot.observability import INFERENCE_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)


class RequestDiscipline(str, enum.Enum):
    SINGLE_FLIGHT = "single_flight"
    KEYED = "keyed"


class InferenceGateway:
    """The agent's only path to the inference service."""

    def __init__(
        self,
        service: InferenceService,
        state: AgentState,
        *,
        bus: SignalBus,
    ) -> None:
        self._service = service
        self._state = state
        self._bus = bus
        self._in_flight_id: str | None = None

    @property
    def service_id(self) -> str:
        """Identity the service uses when it calls the agent back."""
        return self._service.service_id

    async def request(
        self,
        prompt: str,
        model: str,
        requires_trusted_execution: bool,
        output_schema: dict[str, Any] | None,
        callback: AgentEndpoint,
        gas_budget: int,
        *,
        context: str = "",
        discipline: RequestDiscipline = RequestDiscipline.KEYED,
        correlation_id: str | None = None,
    ) -> Result[str]:
        """
        Issue one inference request.

        Returns:
            ``Ok(request_id)`` or a ``Failure`` describing why nothing was sent.
        """
        single_flight = discipline is RequestDiscipline.SINGLE_FLIGHT
        agent_id = self._state.agent_id

        if single_flight and self._state.request_in_flight:
            failure = Failure.from_exception(
                RequestInFlightError("A request is already outstanding")
            )
            return await self._report_failure(failure, context, correlation_id)

        if output_schema:
            try:
                schema_fields(output_schema)
            except InvalidOutputSchemaError as exc:
                return await self._report_failure(
                    Failure.from_exception(exc), context, correlation_id
                )

        if single_flight:
            self._state.request_in_flight = True

        try:
            request_id = await self._service.request_inference(
                input_data=prompt,
                model_name=model,
                requires_trusted_execution=requires_trusted_execution,
                output_schema=output_schema or None,
                callback_target=callback,
                callback_selector=STRUCTURED_CALLBACK if output_schema else TEXT_CALLBACK,
                callback_data=context,
                gas_limit=gas_budget,
            )
        except Exception as exc:
            if single_flight:
                self._state.request_in_flight = False
            return await self._report_failure(
                Failure.from_exception(exc), context, correlation_id
            )

        if single_flight:
            self._in_flight_id = request_id
        self._state.requests_sent += 1
        self._state.last_request_at = datetime.now(timezone.utc)
        INFERENCE_REQUESTS_TOTAL.labels(agent_id=agent_id, outcome="issued").inc()
        logger.info(
            "inference_requested",
            agent_id=agent_id,
            request_id=request_id,
            context=context,
            model=model,
            structured=bool(output_schema),
        )
        await self._bus.publish(
            "request.issued",
            {"request_id": request_id, "context": context, "model": model},
            sender=agent_id,
            correlation_id=correlation_id,
        )
        return Ok(request_id)

    def complete(self, request_id: str) -> None:
        """The answer to ``request_id`` arrived; free the single-in-flight path if it was that one."""
        if self._in_flight_id is not None and request_id == self._in_flight_id:
            self.clear_in_flight()

    def clear_in_flight(self) -> None:
        self._in_flight_id = None
        self._state.request_in_flight = False

    async def _report_failure(
        self, failure: Failure, context: str, correlation_id: str | None
    ) -> Failure:
        agent_id = self._state.agent_id
        INFERENCE_REQUESTS_TOTAL.labels(agent_id=agent_id, outcome="failed").inc()
        logger.warning("inference_request_failed", agent_id=agent_id, context=context, **failure.to_dict())
        await self._bus.publish(
            "request.failed",
            {"context": context, **failure.to_dict()},
            sender=agent_id,
            correlation_id=correlation_id,
        )
        return failure
