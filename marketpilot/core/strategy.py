"""
AgentStrategy — the pluggable decision logic behind an agent.

The runtime owns the fixed orchestration (lifecycle gates, the gateway,
the registry, signals); a strategy only answers four questions:

  1. ``validate_configuration()`` — is my own configuration usable?
  2. ``before_tick(ctx)``         — housekeeping at the start of every tick
  3. ``prepare_request(ctx)``     — what should we ask this tick, if anything?
  4. ``handle_answer(ctx, ...)``  — act on an answer to something we asked

Strategies never see request ids before the runtime has recorded them and
never resolve the registry themselves: by the time ``handle_answer`` runs,
the context has been resolved exactly once.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel

from marketpilot.core.bus import AgentSignal, SignalBus
from marketpilot.core.gateway import RequestDiscipline
from marketpilot.core.lifecycle import AgentState
from marketpilot.errors import ConfigurationError


@dataclass
class InvocationContext:
    """
    Per-invocation context handed to strategy hooks.

    Attributes:
        agent_id: The invoked agent.
        state: The agent's state (balance, counters).
        bus: Signal bus; use ``emit()`` so signals carry the invocation id.
        kind: ``"tick"`` or ``"callback"``.
        invocation_id: Correlates every log line and signal of this invocation.
        data: Free-form values a hook wants reported in the tick report.
    """

    agent_id: str
    state: AgentState
    bus: SignalBus
    kind: str = "tick"
    invocation_id: str = field(default_factory=lambda: uuid4().hex[:16])
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.logger = structlog.get_logger("marketpilot.agent").bind(
            agent_id=self.agent_id,
            invocation_id=self.invocation_id,
            kind=self.kind,
        )

    async def emit(self, topic: str, payload: dict[str, Any] | None = None) -> AgentSignal:
        return await self.bus.publish(
            topic,
            payload,
            sender=self.agent_id,
            correlation_id=self.invocation_id,
        )


@dataclass(frozen=True)
class PreparedRequest:
    """
    A question the strategy wants asked this tick.

    ``context`` is the correlation key handed back with the answer. Fields
    left as None fall back to the agent's configured defaults.
    """

    prompt: str
    context: str
    output_schema: dict[str, Any] | None = None
    model: str | None = None
    requires_trusted_execution: bool | None = None
    gas_budget: int | None = None


@dataclass(frozen=True)
class Skip:
    """Nothing to ask this tick. Not an error."""

    reason: str


class AgentStrategy(abc.ABC):
    """Decision logic plugged into an ``AgentRuntime``."""

    name: str = "strategy"
    discipline: RequestDiscipline = RequestDiscipline.KEYED

    @abc.abstractmethod
    def validate_configuration(self) -> list[tuple[str, str]]:
        """Return ``(field, message)`` for every problem; empty when usable."""

    async def before_tick(self, ctx: InvocationContext) -> None:
        """Runs first on every tick. Failures must be handled here, not raised."""

    @abc.abstractmethod
    async def prepare_request(self, ctx: InvocationContext) -> PreparedRequest | Skip:
        """Decide what to ask this tick."""

    @abc.abstractmethod
    async def handle_answer(
        self,
        ctx: InvocationContext,
        request_id: str,
        context: str,
        payload: Any,
    ) -> None:
        """
        Act on a delivered answer.

        ``payload`` is the raw delivery: a tuple for structured requests,
        a string for unstructured ones. Raise ``MalformedAnswerError`` to
        have the runtime reject and report it.
        """

    def update_config(self, config: BaseModel) -> None:
        """Replace the strategy's policy. Strategies without one refuse."""
        raise ConfigurationError(f"Strategy {self.name!r} has no configurable policy")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
