"""
PositionLedgerView — the agent's own record of positions and winnings.

Enforces at most one position per market for the lifetime of the agent:
``position_taken`` is set when a position is opened and never cleared, so
neither repeated ticks nor repeated answer delivery can open a second one.
A position stays *active* until its market settles; settled positions no
longer count against the active-position cap.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from marketpilot.errors import PositionTakenError
from marketpilot.models import BettingStats, Position

logger = structlog.get_logger(__name__)


class PositionLedgerView:
    """In-memory view of this agent's positions and claimed winnings."""

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._total_winnings = Decimal("0")
        self._claims = 0

    # ── Guards ───────────────────────────────────────────────────────

    def position_taken(self, market_id: str) -> bool:
        return market_id in self._positions

    def get(self, market_id: str) -> Position | None:
        return self._positions.get(market_id)

    # ── Mutations ────────────────────────────────────────────────────

    def open(self, position: Position) -> Position:
        """
        Record a newly opened position.

        Raises:
            PositionTakenError: If the market already has a position.
        """
        if position.market_id in self._positions:
            raise PositionTakenError(
                f"Position already taken on {position.market_id}",
                market_id=position.market_id,
            )
        self._positions[position.market_id] = position
        return position

    def settle(self, market_id: str) -> bool:
        """Mark the position on a settled market inactive. Returns True if it changed."""
        position = self._positions.get(market_id)
        if position is None or not position.active:
            return False
        self._positions[market_id] = position.model_copy(update={"active": False})
        logger.info("position_settled", market_id=market_id)
        return True

    def record_claim(self, amount: Decimal) -> Decimal:
        self._total_winnings += amount
        self._claims += 1
        return self._total_winnings

    # ── Views ────────────────────────────────────────────────────────

    def active_positions(self) -> list[Position]:
        return [p for p in self._positions.values() if p.active]

    def active_count(self) -> int:
        return len(self.active_positions())

    @property
    def total_bets_placed(self) -> int:
        return len(self._positions)

    @property
    def total_winnings(self) -> Decimal:
        return self._total_winnings

    @property
    def claims(self) -> int:
        return self._claims

    def stats(self) -> BettingStats:
        return BettingStats(
            total_bets_placed=self.total_bets_placed,
            total_winnings=self._total_winnings,
            active_positions=self.active_count(),
        )

    def __len__(self) -> int:
        return len(self._positions)
