"""
MarketPilot Models — Shared Pydantic models for agents and collaborators.

Defines the core data structures used across the agent runtime:
  - Market / MarketStatus / Outcome: read-only subjects from the market-data source
  - Choice / DecisionAnswer: the typed, decoded form of a structured answer
  - Position: one stake on one market, owned by the agent
  - BettingConfig: owner-mutable betting policy
  - AgentStateSnapshot / BettingStats / TickReport: reporting views
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marketpilot.errors import ConfigurationError, MalformedAnswerError

# ── Bet bounds ───────────────────────────────────────────────────────

MINIMUM_BET = Decimal("0.01")
MAXIMUM_BET = Decimal("100")


def _from_ordinal(cls, value: int):
    members = list(cls)
    if not 0 <= value < len(members):
        raise ValueError(f"{value} is not a valid {cls.__name__} ordinal")
    return members[value]


# ── Markets ──────────────────────────────────────────────────────────


class MarketStatus(str, enum.Enum):
    """Lifecycle of a market as reported by the market-data source."""

    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    RESOLVED = "resolved"

    @classmethod
    def from_wire(cls, value: Any) -> "MarketStatus":
        """Accept either the ordinal used on the wire or the string value."""
        if isinstance(value, int):
            return _from_ordinal(cls, value)
        return cls(str(value).lower())


class Outcome(str, enum.Enum):
    """Resolved outcome of a market."""

    NO = "no"
    YES = "yes"
    UNRESOLVED = "unresolved"

    @classmethod
    def from_wire(cls, value: Any) -> "Outcome":
        if isinstance(value, int):
            return _from_ordinal(cls, value)
        return cls(str(value).lower())


class Market(BaseModel):
    """A prediction topic the agent can take a position on."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=66)
    name: str
    description: str = ""
    expiry: int = 0
    status: MarketStatus = MarketStatus.PENDING
    resolved_outcome: Outcome = Outcome.UNRESOLVED

    @property
    def is_settled(self) -> bool:
        return self.status in (MarketStatus.RESOLVED, MarketStatus.CANCELLED)


# ── Structured answers ───────────────────────────────────────────────


class Choice(str, enum.Enum):
    """The binary prediction carried by an answer. Anything else is malformed."""

    YES = "yes"
    NO = "no"

    @classmethod
    def parse(cls, raw: Any) -> "Choice":
        if not isinstance(raw, str):
            raise MalformedAnswerError(
                f"Choice must be a string, got {type(raw).__name__}",
                field="decision",
            )
        try:
            return cls(raw)
        except ValueError:
            raise MalformedAnswerError(
                f"Unrecognized choice literal: {raw!r}", field="decision"
            ) from None

    @property
    def side(self) -> bool:
        """Side submitted to the ledger: True for yes."""
        return self is Choice.YES


class DecisionAnswer(BaseModel):
    """A validated structured answer from the inference service."""

    model_config = ConfigDict(frozen=True)

    choice: Choice
    confidence: int = Field(ge=0, le=100)
    rationale: str = ""


# ── Positions ────────────────────────────────────────────────────────


class Position(BaseModel):
    """The agent's stake and predicted side on one market."""

    model_config = ConfigDict(frozen=True)

    market_id: str
    active: bool = True
    amount: Decimal
    side: bool
    entered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    confidence: int = Field(ge=0, le=100)
    rationale: str = ""


# ── Betting policy ───────────────────────────────────────────────────


class BettingConfig(BaseModel):
    """
    Owner-mutable betting policy.

    Construction only checks types; cross-field bounds are checked by
    ``check()``, which the lifecycle runs on every activation attempt and
    on every policy update.
    """

    min_bet: Decimal = MINIMUM_BET
    max_bet_size: Decimal = Decimal("1")
    min_confidence: int = Field(default=60, ge=0)
    risk_threshold: int = Field(default=50, ge=0)
    max_active_positions: int = 5
    high_risk_enabled: bool = False

    def violations(self) -> list[tuple[str, str]]:
        """Return ``(field, message)`` for every bound that does not hold."""
        problems: list[tuple[str, str]] = []
        if self.min_bet < MINIMUM_BET:
            problems.append(("min_bet", f"min_bet {self.min_bet} < {MINIMUM_BET}"))
        if self.max_bet_size < self.min_bet:
            problems.append(
                ("max_bet_size", f"max_bet_size {self.max_bet_size} < min_bet {self.min_bet}")
            )
        if self.max_bet_size > MAXIMUM_BET:
            problems.append(
                ("max_bet_size", f"max_bet_size {self.max_bet_size} > {MAXIMUM_BET}")
            )
        if self.min_confidence > 100:
            problems.append(("min_confidence", "min_confidence must be <= 100"))
        if self.risk_threshold > 100:
            problems.append(("risk_threshold", "risk_threshold must be <= 100"))
        if self.max_active_positions <= 0:
            problems.append(
                ("max_active_positions", "max_active_positions must be positive")
            )
        return problems

    @property
    def is_valid(self) -> bool:
        return not self.violations()

    def check(self) -> None:
        """Raise ``ConfigurationError`` for the first violated bound."""
        problems = self.violations()
        if problems:
            field, message = problems[0]
            raise ConfigurationError(message, field=field)


# ── Reporting views ──────────────────────────────────────────────────


class AgentStateSnapshot(BaseModel):
    """Read-only view of an agent's lifecycle state."""

    agent_id: str
    owner: str
    active: bool
    requests_sent: int
    responses_received: int
    last_request_at: datetime | None = None
    request_in_flight: bool
    execution_interval: int
    max_executions: int
    executions: int
    balance: Decimal
    schedule_handle: str | None = None


class BettingStats(BaseModel):
    total_bets_placed: int = 0
    total_winnings: Decimal = Decimal("0")
    active_positions: int = 0


class TickStatus(str, enum.Enum):
    REQUEST_ISSUED = "request_issued"
    NO_ACTION = "no_action"
    FAILED = "failed"


class TickReport(BaseModel):
    """Outcome of one invocation of the execution entry point."""

    status: TickStatus
    reason: str = ""
    request_id: str | None = None
    context: str | None = None
    claimed: Decimal = Decimal("0")
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is not TickStatus.FAILED
