"""
SignalBus — In-process pub/sub for agent signals.

Every observable thing an agent does (request issued, answer received,
tick completed, position opened, claim attempted, ...) is published here as
an ``AgentSignal``. Subscribers turn these into audit logs, metrics or
test assertions; the per-topic history is enough to reconstruct an
agent's recent activity.

Key features:
  - Typed signals via ``AgentSignal`` (Pydantic)
  - Wildcard topic matching (``"claim.*"`` → ``"claim.failed"``)
  - Dead-letter isolation: handler errors never block others or the agent
  - Per-topic ring-buffer history for replay/debug
  - Singleton accessor: ``get_signal_bus()``

Topic naming convention: ``domain.verb``
  - ``request.issued``, ``request.failed``
  - ``answer.received``, ``answer.rejected``
  - ``tick.completed``
  - ``position.opened``, ``position.rejected``
  - ``claim.attempted``, ``claim.succeeded``, ``claim.failed``

Usage::

    bus = get_signal_bus()

    async def on_claim(signal: AgentSignal) -> None:
        print(signal.payload["amount"])

    sub = bus.subscribe("claim.*", on_claim)
    await bus.publish("claim.succeeded", {"amount": "1.5"}, sender="agent-0")
    bus.unsubscribe(sub)
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

import structlog
from opentelemetry import trace
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  AgentSignal — Typed envelope for bus messages
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AgentSignal(BaseModel):
    """
    Typed signal envelope.

    Attributes:
        topic: The topic this signal was published to.
        sender: Identifier of the publishing agent.
        payload: Identifying data (request id or market id, amounts, reasons).
        timestamp: UTC ISO-8601 timestamp of publication.
        correlation_id: Id shared by all signals of one invocation.
    """

    topic: str
    sender: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: str = Field(default_factory=lambda: uuid4().hex[:16])


SignalHandler = Callable[[AgentSignal], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    """Opaque handle returned by ``SignalBus.subscribe()``."""

    id: str = field(default_factory=lambda: uuid4().hex[:12])
    topic_pattern: str = ""
    handler: SignalHandler | None = field(default=None, repr=False)


_DEFAULT_HISTORY_LIMIT = 200


class SignalBus:
    """In-memory signal bus shared by every agent in the process."""

    def __init__(self, *, history_limit: int = _DEFAULT_HISTORY_LIMIT) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._history: dict[str, deque[AgentSignal]] = {}
        self._history_limit = history_limit
        self._stats = {"published": 0, "delivered": 0, "errors": 0}

    # ── Subscribe ────────────────────────────────────────────────────

    def subscribe(self, topic_pattern: str, handler: SignalHandler) -> Subscription:
        """
        Register an async handler for signals matching a topic pattern.

        Args:
            topic_pattern: Topic string, may include wildcards
                           (``*`` matches anything, ``?`` matches one char).
            handler: Async callable ``(AgentSignal) -> None``.
        """
        sub = Subscription(topic_pattern=topic_pattern, handler=handler)
        self._subscriptions[sub.id] = sub
        logger.debug("bus_subscribed", sub_id=sub.id, topic_pattern=topic_pattern)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        removed = self._subscriptions.pop(subscription.id, None)
        if removed:
            logger.debug("bus_unsubscribed", sub_id=subscription.id)
        return removed is not None

    # ── Publish ──────────────────────────────────────────────────────

    async def publish(
        self,
        topic: str,
        payload: dict[str, Any] | None = None,
        *,
        sender: str = "",
        correlation_id: str | None = None,
    ) -> AgentSignal:
        """
        Publish a signal to a topic and dispatch it to matching handlers.

        Returns:
            The published ``AgentSignal``.
        """
        signal = AgentSignal(
            topic=topic,
            sender=sender,
            payload=payload or {},
            **({"correlation_id": correlation_id} if correlation_id else {}),
        )

        if topic not in self._history:
            self._history[topic] = deque(maxlen=self._history_limit)
        self._history[topic].append(signal)
        self._stats["published"] += 1

        matching = [
            sub.handler
            for sub in self._subscriptions.values()
            if sub.handler is not None and fnmatch.fnmatch(topic, sub.topic_pattern)
        ]
        if not matching:
            return signal

        with tracer.start_as_current_span(
            "bus.publish",
            attributes={"topic": topic, "sender": sender, "subscribers": len(matching)},
        ):
            results = await asyncio.gather(
                *(self._safe_invoke(handler, signal) for handler in matching),
                return_exceptions=True,
            )

        errors = sum(1 for r in results if r is not None)
        self._stats["delivered"] += len(results) - errors
        self._stats["errors"] += errors
        return signal

    # ── History ──────────────────────────────────────────────────────

    def history(self, topic: str, *, limit: int = 50) -> list[AgentSignal]:
        """Most recent signals published to an exact topic, newest first."""
        buf = self._history.get(topic)
        if buf is None:
            return []
        return list(buf)[-limit:][::-1]

    def topics(self) -> list[str]:
        return sorted(self._history)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def clear(self) -> None:
        """Remove all subscriptions and history. Useful for tests."""
        self._subscriptions.clear()
        self._history.clear()
        self._stats = {"published": 0, "delivered": 0, "errors": 0}

    # ── Internals ────────────────────────────────────────────────────

    @staticmethod
    async def _safe_invoke(handler: SignalHandler, signal: AgentSignal) -> None:
        try:
            await handler(signal)
        except Exception as exc:
            logger.error(
                "bus_handler_error",
                topic=signal.topic,
                sender=signal.sender,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise  # collected by asyncio.gather

    def __repr__(self) -> str:
        return f"SignalBus(subscriptions={self.subscription_count}, stats={self._stats})"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Singleton
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_signal_bus: SignalBus | None = None


def get_signal_bus() -> SignalBus:
    """Get or create the global SignalBus singleton."""
    global _signal_bus
    if _signal_bus is None:
        _signal_bus = SignalBus()
    return _signal_bus


def reset_signal_bus() -> None:
    """Reset the global SignalBus singleton. Useful in tests."""
    global _signal_bus
    if _signal_bus is not None:
        _signal_bus.clear()
    _signal_bus = None
