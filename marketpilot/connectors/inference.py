"""
Inference service — asks a model a question and answers *later*.

``request_inference`` returns a request id immediately; the answer is
delivered afterwards by invoking the callback target with the callback
selector, the request id and the answer payload:

  - unstructured requests (empty schema) deliver the raw text
  - structured requests deliver the positional tuple described in
    ``marketpilot.schema``

Implementations:
  - ``LocalInferenceService``: records requests; tests and simulations
    deliver answers explicitly (``deliver``) or through a responder.
  - ``GeminiInferenceService``: runs the prompt on Gemini via google-genai
    in a background task and delivers the JSON answer when it completes.
"""

from __future__ import annotations

import abc
import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

import structlog

from marketpilot.connectors.base_connector import AgentEndpoint, BaseConnector
from marketpilot.errors import (
    ConnectorUnavailableError,
    MalformedAnswerError,
    ServiceRejectedError,
    UnknownRequestError,
)
from marketpilot.schema import encode_answer, schema_fields

logger = structlog.get_logger(__name__)

STRUCTURED_CALLBACK = "on_structured_answer"
TEXT_CALLBACK = "on_text_answer"


class InferenceService(BaseConnector):
    """Contract of the inference collaborator."""

    service_id: str = ""

    @abc.abstractmethod
    async def request_inference(
        self,
        input_data: str,
        model_name: str,
        requires_trusted_execution: bool,
        output_schema: dict[str, Any] | None,
        callback_target: AgentEndpoint,
        callback_selector: str,
        callback_data: str,
        gas_limit: int,
    ) -> str:
        """Accept a request and return its id. Raise ``ServiceRejectedError`` to refuse."""


@dataclass
class InferenceCall:
    """A request as seen by the service."""

    request_id: str
    input_data: str
    model_name: str
    requires_trusted_execution: bool
    output_schema: dict[str, Any] | None
    callback_target: AgentEndpoint
    callback_selector: str
    callback_data: str
    gas_limit: int
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivered: bool = False


Responder = Callable[[InferenceCall], Awaitable[dict[str, Any] | str]]


async def _deliver(service_id: str, call: InferenceCall, answer: dict[str, Any] | str) -> Any:
    """Encode an answer for its request and invoke the callback target."""
    if call.output_schema:
        if not isinstance(answer, dict):
            raise MalformedAnswerError("Structured request needs a mapping answer")
        payload: Any = encode_answer(call.output_schema, answer)
    else:
        payload = answer if isinstance(answer, str) else json.dumps(answer)
    return await call.callback_target.dispatch(
        call.callback_selector,
        caller=service_id,
        request_id=call.request_id,
        payload=payload,
        callback_data=call.callback_data,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  LocalInferenceService — in-process, delivery under caller control
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class LocalInferenceService(InferenceService):
    """
    In-process inference service.

    Requests are stored until ``deliver()`` (explicit answer) or
    ``deliver_pending()`` (answers produced by the configured responder).
    ``reject_next()`` makes the next request fail with a reason string.
    """

    name = "local_inference"
    description = "In-process inference service with caller-controlled delivery"

    def __init__(self, *, service_id: str = "local-inference", responder: Responder | None = None):
        self.service_id = service_id
        self._responder = responder
        self._calls: dict[str, InferenceCall] = {}
        self._reject_reason: str | None = None

    async def request_inference(
        self,
        input_data: str,
        model_name: str,
        requires_trusted_execution: bool,
        output_schema: dict[str, Any] | None,
        callback_target: AgentEndpoint,
        callback_selector: str,
        callback_data: str,
        gas_limit: int,
    ) -> str:
        if self._reject_reason is not None:
            reason, self._reject_reason = self._reject_reason, None
            raise ServiceRejectedError(reason, connector_name=self.name)
        if output_schema:
            schema_fields(output_schema)

        request_id = uuid4().hex
        self._calls[request_id] = InferenceCall(
            request_id=request_id,
            input_data=input_data,
            model_name=model_name,
            requires_trusted_execution=requires_trusted_execution,
            output_schema=output_schema or None,
            callback_target=callback_target,
            callback_selector=callback_selector,
            callback_data=callback_data,
            gas_limit=gas_limit,
        )
        logger.debug("inference_request_accepted", request_id=request_id, model=model_name)
        return request_id

    def reject_next(self, reason: str) -> None:
        self._reject_reason = reason

    def get(self, request_id: str) -> InferenceCall | None:
        return self._calls.get(request_id)

    @property
    def calls(self) -> list[InferenceCall]:
        return list(self._calls.values())

    def pending(self) -> list[InferenceCall]:
        return [c for c in self._calls.values() if not c.delivered]

    async def deliver(self, request_id: str, answer: dict[str, Any] | str) -> Any:
        """
        Deliver an answer for a request. Delivering twice is allowed so
        duplicate delivery can be exercised; the agent must tolerate it.
        """
        call = self._calls.get(request_id)
        if call is None:
            raise UnknownRequestError(f"Unknown request {request_id}", request_id=request_id)
        call.delivered = True
        return await _deliver(self.service_id, call, answer)

    async def deliver_pending(self) -> int:
        """Answer every undelivered request with the responder."""
        if self._responder is None:
            return 0
        delivered = 0
        for call in self.pending():
            answer = await self._responder(call)
            await self.deliver(call.request_id, answer)
            delivered += 1
        return delivered


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GeminiInferenceService — google-genai backed, background delivery
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class GeminiInferenceService(InferenceService):
    """
    Inference service backed by the Gemini API.

    Each request becomes a background task; the agent's invocation returns
    as soon as the request id is issued and the answer arrives as a
    separate callback invocation once generation completes. Failed
    generations are logged and never delivered, which leaves the agent's
    registry entry pending.
    """

    name = "gemini"
    description = "Gemini structured-output inference via google-genai"

    def __init__(self, *, client=None, api_key: str = "", service_id: str = "gemini-inference"):
        self.service_id = service_id
        self._client = client
        self._api_key = api_key
        self._tasks: set[asyncio.Task] = set()

    async def setup(self) -> None:
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self._api_key or None)
        logger.info("gemini_inference_ready")

    async def teardown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def health_check(self) -> bool:
        return self._client is not None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every started generation has been delivered or dropped."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def request_inference(
        self,
        input_data: str,
        model_name: str,
        requires_trusted_execution: bool,
        output_schema: dict[str, Any] | None,
        callback_target: AgentEndpoint,
        callback_selector: str,
        callback_data: str,
        gas_limit: int,
    ) -> str:
        if self._client is None:
            raise ConnectorUnavailableError(
                "Gemini client not initialized — call setup()", connector_name=self.name
            )
        if requires_trusted_execution:
            raise ServiceRejectedError(
                "Trusted execution is not available on this service",
                connector_name=self.name,
            )
        if output_schema:
            schema_fields(output_schema)

        call = InferenceCall(
            request_id=uuid4().hex,
            input_data=input_data,
            model_name=model_name,
            requires_trusted_execution=requires_trusted_execution,
            output_schema=output_schema or None,
            callback_target=callback_target,
            callback_selector=callback_selector,
            callback_data=callback_data,
            gas_limit=gas_limit,
        )
        task = asyncio.create_task(self._generate_and_deliver(call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("gemini_request_started", request_id=call.request_id, model=model_name)
        return call.request_id

    async def _generate_and_deliver(self, call: InferenceCall) -> None:
        from google.genai import types

        if call.output_schema:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_json_schema=call.output_schema,
            )
        else:
            config = types.GenerateContentConfig()

        try:
            response = await self._client.aio.models.generate_content(
                model=call.model_name,
                contents=call.input_data,
                config=config,
            )
            text = response.text or ""
            answer: dict[str, Any] | str = json.loads(text) if call.output_schema else text
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "gemini_generation_failed",
                request_id=call.request_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        try:
            await _deliver(self.service_id, call, answer)
            call.delivered = True
        except Exception as exc:
            logger.error(
                "gemini_delivery_failed",
                request_id=call.request_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
