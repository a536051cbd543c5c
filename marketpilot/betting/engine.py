"""
BettingStrategy — the decision engine of the simple betting agent.

Each tick:
  1. Claim any winnings the ledger holds for the agent (before sizing, so
     the claimed funds are spendable this round).
  2. Mark positions on settled markets inactive.
  3. Pick the first pending market the agent has no position on, and ask
     the inference service for a yes/no decision with a confidence.

When the answer arrives (a separate invocation), the engine validates it,
sizes the bet from the confidence and, if every check passes, submits the
position to the ledger.

Every check that fails drops the action and publishes ``position.rejected``
with a reason; nothing here aborts the invocation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog

from marketpilot.betting.positions import PositionLedgerView
from marketpilot.betting.prompts import DECISION_SCHEMA, build_prompt, decode_decision
from marketpilot.betting.sizing import compute_bet_size
from marketpilot.config import AgentSettings
from marketpilot.connectors.inference import InferenceService
from marketpilot.connectors.ledger import MarketLedger
from marketpilot.connectors.markets import MarketDataSource
from marketpilot.connectors.scheduler import TriggerService
from marketpilot.core.bus import SignalBus
from marketpilot.core.gateway import RequestDiscipline
from marketpilot.core.result import Failure, attempt
from marketpilot.core.runtime import AgentRuntime
from marketpilot.core.strategy import AgentStrategy, InvocationContext, PreparedRequest, Skip
from marketpilot.errors import ConfigurationError, MalformedAnswerError
from marketpilot.models import (
    MINIMUM_BET,
    BettingConfig,
    BettingStats,
    Market,
    Position,
)
from marketpilot.observability import CLAIMS_TOTAL, POSITIONS_OPENED_TOTAL

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class BettingStrategy(AgentStrategy):
    """
    Bets on pending markets, one position per market, sized by confidence.

    Args:
        market_data: Source of pending markets.
        ledger: Where positions are taken and winnings claimed.
        config: Betting policy; replaced through ``update_config``.
        positions: The agent's position view (a fresh one by default).
    """

    name = "simple_betting"
    discipline = RequestDiscipline.KEYED

    def __init__(
        self,
        market_data: MarketDataSource | None,
        ledger: MarketLedger | None,
        config: BettingConfig | None = None,
        positions: PositionLedgerView | None = None,
    ) -> None:
        self.market_data = market_data
        self.ledger = ledger
        self.config = config or BettingConfig()
        self.positions = positions or PositionLedgerView()

    # ── Validation ───────────────────────────────────────────────────

    def validate_configuration(self) -> list[tuple[str, str]]:
        problems = self.config.violations()
        if self.market_data is None:
            problems.append(("market_data", "market-data source is not configured"))
        if self.ledger is None:
            problems.append(("ledger", "market ledger is not configured"))
        return problems

    def update_config(self, config: BettingConfig) -> None:
        """
        Replace the betting policy.

        Raises:
            ConfigurationError: If ``config`` violates a bound; the current
                policy is kept.
        """
        if not isinstance(config, BettingConfig):
            raise ConfigurationError("Expected a BettingConfig", field="config")
        config.check()
        self.config = config
        logger.info("betting_config_updated", **config.model_dump(mode="json"))

    def get_betting_stats(self) -> BettingStats:
        return self.positions.stats()

    # ── Tick ─────────────────────────────────────────────────────────

    async def before_tick(self, ctx: InvocationContext) -> None:
        ctx.data["claimed"] = await self.claim_winnings(ctx)
        await self.reconcile_positions(ctx)

    async def claim_winnings(self, ctx: InvocationContext) -> Decimal:
        """
        Claim every winning the ledger holds for the agent in one call.

        Returns the amount credited to the balance (zero when there was
        nothing to claim or the claim failed).
        """
        account = ctx.agent_id
        winnings = await attempt(self.ledger.get_user_winnings(account))
        if isinstance(winnings, Failure):
            await self._claim_failed(ctx, winnings, amount=None)
            return ZERO
        if winnings.value <= ZERO:
            return ZERO

        amount = winnings.value
        await ctx.emit("claim.attempted", {"amount": str(amount)})
        claimed = await attempt(self.ledger.claim_winnings(account))
        if isinstance(claimed, Failure):
            await self._claim_failed(ctx, claimed, amount=amount)
            return ZERO

        paid = claimed.value
        balance = ctx.state.credit(paid)
        self.positions.record_claim(paid)
        CLAIMS_TOTAL.labels(agent_id=account, outcome="succeeded").inc()
        ctx.logger.info("winnings_claimed", amount=str(paid), balance=str(balance))
        await ctx.emit("claim.succeeded", {"amount": str(paid), "balance": str(balance)})
        return paid

    async def _claim_failed(
        self, ctx: InvocationContext, failure: Failure, *, amount: Decimal | None
    ) -> None:
        CLAIMS_TOTAL.labels(agent_id=ctx.agent_id, outcome="failed").inc()
        ctx.logger.warning("claim_failed", **failure.to_dict())
        await ctx.emit(
            "claim.failed",
            {"amount": str(amount) if amount is not None else None, **failure.to_dict()},
        )

    async def reconcile_positions(self, ctx: InvocationContext) -> int:
        """Mark positions on resolved or cancelled markets inactive."""
        settled = 0
        for position in self.positions.active_positions():
            result = await attempt(self.market_data.get_market(position.market_id))
            if isinstance(result, Failure):
                ctx.logger.debug(
                    "position_refresh_failed", market_id=position.market_id, reason=result.reason
                )
                continue
            if result.value.is_settled and self.positions.settle(position.market_id):
                settled += 1
        return settled

    async def select_market(self, ctx: InvocationContext) -> Market | None:
        """
        First pending market without a position, in the source's order.

        Falls back to the single most recent pending market when the listing
        fails; returns None when both fail or nothing qualifies.
        """
        listing = await attempt(self.market_data.get_pending_markets())
        if isinstance(listing, Failure):
            ctx.logger.warning("market_listing_failed", reason=listing.reason)
            recent = await attempt(self.market_data.get_most_recent_market(True))
            if isinstance(recent, Failure):
                ctx.logger.warning("recent_market_lookup_failed", reason=recent.reason)
                return None
            market = recent.value
            if self.positions.position_taken(market.id):
                return None
            return market

        for market_id in listing.value:
            if self.positions.position_taken(market_id):
                continue
            result = await attempt(self.market_data.get_market(market_id))
            if isinstance(result, Failure):
                ctx.logger.warning("market_lookup_failed", market_id=market_id, reason=result.reason)
                continue
            return result.value
        return None

    async def prepare_request(self, ctx: InvocationContext) -> PreparedRequest | Skip:
        if self.positions.active_count() >= self.config.max_active_positions:
            return Skip("position_cap_reached")

        market = await self.select_market(ctx)
        if market is None:
            return Skip("no_market_available")

        ctx.logger.info("market_selected", market_id=market.id, name=market.name)
        return PreparedRequest(
            prompt=build_prompt(market, ctx.state.balance),
            context=market.id,
            output_schema=DECISION_SCHEMA,
        )

    # ── Answer ───────────────────────────────────────────────────────

    async def handle_answer(
        self,
        ctx: InvocationContext,
        request_id: str,
        context: str,
        payload: Any,
    ) -> None:
        market_id = context
        if self.positions.position_taken(market_id):
            await self._reject(ctx, request_id, market_id, "position_already_taken")
            return

        if not isinstance(payload, (tuple, list)):
            raise MalformedAnswerError("Expected a structured answer", field="*")
        answer = decode_decision(payload)

        config = self.config
        amount = compute_bet_size(answer.confidence, config.min_bet, config.max_bet_size)
        balance = ctx.state.balance

        if balance < amount:
            await self._reject(
                ctx, request_id, market_id, "insufficient_balance",
                amount=str(amount), balance=str(balance),
            )
            return
        if not MINIMUM_BET <= amount <= config.max_bet_size:
            await self._reject(ctx, request_id, market_id, "amount_out_of_bounds", amount=str(amount))
            return
        if answer.confidence < config.min_confidence:
            await self._reject(
                ctx, request_id, market_id, "confidence_below_minimum",
                confidence=answer.confidence, min_confidence=config.min_confidence,
            )
            return

        side = answer.choice.side
        placed = await attempt(
            self.ledger.take_position(market_id, side, amount, account=ctx.agent_id)
        )
        if isinstance(placed, Failure):
            await self._reject(
                ctx, request_id, market_id, "ledger_rejected",
                error_code=placed.error_code, detail=placed.reason,
            )
            return

        ctx.state.debit(amount)
        self.positions.open(
            Position(
                market_id=market_id,
                amount=amount,
                side=side,
                confidence=answer.confidence,
                rationale=answer.rationale,
            )
        )
        POSITIONS_OPENED_TOTAL.labels(agent_id=ctx.agent_id).inc()
        ctx.logger.info(
            "position_opened",
            market_id=market_id,
            side=answer.choice.value,
            amount=str(amount),
            confidence=answer.confidence,
        )
        await ctx.emit(
            "position.opened",
            {
                "request_id": request_id,
                "market_id": market_id,
                "side": answer.choice.value,
                "amount": str(amount),
                "confidence": answer.confidence,
                "rationale": answer.rationale,
                "balance": str(ctx.state.balance),
            },
        )

    async def _reject(
        self,
        ctx: InvocationContext,
        request_id: str,
        market_id: str,
        reason: str,
        **details: Any,
    ) -> None:
        ctx.logger.info("position_rejected", market_id=market_id, reason=reason, **details)
        await ctx.emit(
            "position.rejected",
            {"request_id": request_id, "market_id": market_id, "reason": reason, **details},
        )


# ── Factory ──────────────────────────────────────────────────────────


def create_betting_agent(
    settings: AgentSettings,
    *,
    market_data: MarketDataSource | None,
    ledger: MarketLedger | None,
    inference: InferenceService,
    scheduler: TriggerService | None = None,
    config: BettingConfig | None = None,
    bus: SignalBus | None = None,
) -> AgentRuntime:
    """Build a betting agent runtime from settings and its collaborators."""
    strategy = BettingStrategy(
        market_data,
        ledger,
        config=config or settings.betting_config(),
    )
    return AgentRuntime.from_settings(
        settings,
        strategy=strategy,
        inference=inference,
        scheduler=scheduler,
        bus=bus,
    )
