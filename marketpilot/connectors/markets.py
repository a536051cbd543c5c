"""
Market-data source — the agent's read-only view of prediction markets.

Contract:
  - ``get_pending_markets()``       → market ids open for positions, in source order
  - ``get_market(market_id)``       → full market record
  - ``get_most_recent_market(pending_only)`` → the newest market

Implementations:
  - ``InMemoryMarketData``: ordered in-process store (tests, simulation)
  - ``HttpMarketDataClient``: JSON-over-HTTP client (httpx + tenacity)
"""

from __future__ import annotations

import abc
from typing import Any

import structlog

from marketpilot.connectors.base_connector import BaseConnector
from marketpilot.connectors.http import HttpCollaborator, retry_on_rate_limit
from marketpilot.errors import ConnectorError, ServiceRejectedError
from marketpilot.models import Market, MarketStatus, Outcome

logger = structlog.get_logger(__name__)


class MarketDataSource(BaseConnector):
    """Contract of the market-data collaborator."""

    @abc.abstractmethod
    async def get_pending_markets(self) -> list[str]: ...

    @abc.abstractmethod
    async def get_market(self, market_id: str) -> Market: ...

    @abc.abstractmethod
    async def get_most_recent_market(self, pending_only: bool = True) -> Market: ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  InMemoryMarketData
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InMemoryMarketData(MarketDataSource):
    """Markets kept in creation order; the last one added is the most recent."""

    name = "memory_markets"
    description = "In-process market-data source"

    def __init__(self, markets: list[Market] | None = None) -> None:
        self._markets: dict[str, Market] = {}
        for market in markets or []:
            self.add(market)

    def add(self, market: Market) -> Market:
        self._markets[market.id] = market
        return market

    def set_status(
        self,
        market_id: str,
        status: MarketStatus,
        outcome: Outcome = Outcome.UNRESOLVED,
    ) -> Market:
        market = self._require(market_id)
        updated = market.model_copy(update={"status": status, "resolved_outcome": outcome})
        self._markets[market_id] = updated
        return updated

    @property
    def markets(self) -> list[Market]:
        return list(self._markets.values())

    async def get_pending_markets(self) -> list[str]:
        return [m.id for m in self._markets.values() if m.status is MarketStatus.PENDING]

    async def get_market(self, market_id: str) -> Market:
        return self._require(market_id)

    async def get_most_recent_market(self, pending_only: bool = True) -> Market:
        for market in reversed(list(self._markets.values())):
            if not pending_only or market.status is MarketStatus.PENDING:
                return market
        raise ServiceRejectedError("No market available", connector_name=self.name)

    def _require(self, market_id: str) -> Market:
        market = self._markets.get(market_id)
        if market is None:
            raise ServiceRejectedError(f"Unknown market {market_id}", connector_name=self.name)
        return market


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  HttpMarketDataClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def market_from_payload(data: Any) -> Market:
    """
    Build a Market from a JSON object or the positional
    ``(id, name, description, expiry, status, resolvedOutcome)`` tuple.
    """
    try:
        if isinstance(data, (list, tuple)):
            market_id, name, description, expiry, status, outcome = data
        else:
            market_id = data["id"]
            name = data.get("name", "")
            description = data.get("description", "")
            expiry = data.get("expiry", 0)
            status = data.get("status", 0)
            outcome = data.get("resolved_outcome", data.get("resolvedOutcome", 2))
        return Market(
            id=str(market_id),
            name=name,
            description=description,
            expiry=int(expiry),
            status=MarketStatus.from_wire(status),
            resolved_outcome=Outcome.from_wire(outcome),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ConnectorError(f"Malformed market payload: {e}", connector_name="http_markets") from e


class HttpMarketDataClient(HttpCollaborator, MarketDataSource):
    """Market-data source served over HTTP."""

    name = "http_markets"
    description = "Market-data source over JSON/HTTP"

    @retry_on_rate_limit
    async def get_pending_markets(self) -> list[str]:
        data = await self._request("GET", "/markets/pending")
        ids = data if isinstance(data, list) else data.get("markets", [])
        return [str(i) for i in ids]

    @retry_on_rate_limit
    async def get_market(self, market_id: str) -> Market:
        return market_from_payload(await self._request("GET", f"/markets/{market_id}"))

    @retry_on_rate_limit
    async def get_most_recent_market(self, pending_only: bool = True) -> Market:
        data = await self._request(
            "GET",
            "/markets/latest",
            params={"pending_only": str(pending_only).lower()},
        )
        return market_from_payload(data)

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except ConnectorError as e:
            logger.warning("market_data_unhealthy", error=str(e))
            return False
