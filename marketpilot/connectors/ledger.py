"""
Market ledger — accepts positions, tracks winnings, pays out.

Contract:
  - ``take_position(market_id, side, amount, account)`` — stake ``amount`` on a side
  - ``get_user_winnings(account)``  → claimable amount
  - ``claim_winnings(account)``     → amount paid out

Implementations:
  - ``InMemoryMarketLedger``: pari-mutuel pools per market (tests, simulation)
  - ``HttpMarketLedgerClient``: JSON-over-HTTP client (httpx + tenacity)
"""

from __future__ import annotations

import abc
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

import structlog

from marketpilot.connectors.base_connector import BaseConnector
from marketpilot.connectors.http import HttpCollaborator, retry_on_rate_limit
from marketpilot.errors import ConnectorError, ServiceRejectedError
from marketpilot.models import Outcome

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class MarketLedger(BaseConnector):
    """Contract of the ledger collaborator."""

    @abc.abstractmethod
    async def take_position(
        self, market_id: str, side: bool, amount: Decimal, *, account: str
    ) -> None: ...

    @abc.abstractmethod
    async def get_user_winnings(self, account: str) -> Decimal: ...

    @abc.abstractmethod
    async def claim_winnings(self, account: str) -> Decimal: ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  InMemoryMarketLedger
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class Stake:
    account: str
    market_id: str
    side: bool
    amount: Decimal


class InMemoryMarketLedger(MarketLedger):
    """
    Pari-mutuel ledger.

    When a market settles, winners share the whole pool in proportion to
    their stake; a cancelled market (or one nobody won) refunds every stake.
    """

    name = "memory_ledger"
    description = "In-process pari-mutuel market ledger"

    def __init__(self) -> None:
        self._stakes: list[Stake] = []
        self._settled: dict[str, Outcome | None] = {}
        self._winnings: dict[str, Decimal] = defaultdict(lambda: ZERO)
        self.claimed: dict[str, Decimal] = defaultdict(lambda: ZERO)

    async def take_position(
        self, market_id: str, side: bool, amount: Decimal, *, account: str
    ) -> None:
        if market_id in self._settled:
            raise ServiceRejectedError(
                f"Market {market_id} is already settled", connector_name=self.name
            )
        if amount <= ZERO:
            raise ServiceRejectedError("Stake must be positive", connector_name=self.name)
        self._stakes.append(Stake(account=account, market_id=market_id, side=side, amount=amount))
        logger.debug("ledger_stake_recorded", market_id=market_id, account=account, amount=str(amount))

    async def get_user_winnings(self, account: str) -> Decimal:
        return self._winnings[account]

    async def claim_winnings(self, account: str) -> Decimal:
        amount = self._winnings[account]
        if amount <= ZERO:
            raise ServiceRejectedError("Nothing to claim", connector_name=self.name)
        self._winnings[account] = ZERO
        self.claimed[account] += amount
        return amount

    def stakes_for(self, market_id: str) -> list[Stake]:
        return [s for s in self._stakes if s.market_id == market_id]

    def settle(self, market_id: str, outcome: Outcome | None) -> None:
        """Settle a market. ``None`` or ``Outcome.UNRESOLVED`` means cancelled."""
        if market_id in self._settled:
            raise ServiceRejectedError(
                f"Market {market_id} is already settled", connector_name=self.name
            )
        self._settled[market_id] = outcome
        stakes = self.stakes_for(market_id)
        pool = sum((s.amount for s in stakes), ZERO)

        winners: list[Stake] = []
        if outcome in (Outcome.YES, Outcome.NO):
            winning_side = outcome is Outcome.YES
            winners = [s for s in stakes if s.side == winning_side]

        if not winners:
            for stake in stakes:
                self._winnings[stake.account] += stake.amount
            return

        winning_pool = sum((s.amount for s in winners), ZERO)
        for stake in winners:
            self._winnings[stake.account] += pool * stake.amount / winning_pool


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  HttpMarketLedgerClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _amount(data: object, key: str = "amount") -> Decimal:
    raw = data.get(key) if isinstance(data, dict) else data
    try:
        return Decimal(str(raw))
    except ArithmeticError as e:
        raise ConnectorError(f"Malformed amount {raw!r}", connector_name="http_ledger") from e


class HttpMarketLedgerClient(HttpCollaborator, MarketLedger):
    """Market ledger served over HTTP. Amounts travel as decimal strings."""

    name = "http_ledger"
    description = "Market ledger over JSON/HTTP"

    @retry_on_rate_limit
    async def take_position(
        self, market_id: str, side: bool, amount: Decimal, *, account: str
    ) -> None:
        await self._request(
            "POST",
            "/positions",
            json={
                "market_id": market_id,
                "side": side,
                "amount": str(amount),
                "account": account,
            },
        )

    @retry_on_rate_limit
    async def get_user_winnings(self, account: str) -> Decimal:
        return _amount(await self._request("GET", f"/winnings/{account}"))

    async def claim_winnings(self, account: str) -> Decimal:
        # Not retried: a claim is not idempotent from the caller's side.
        return _amount(await self._request("POST", "/claims", json={"account": account}))
