"""
Tests for marketpilot.connectors.ledger — pari-mutuel pools and the HTTP client.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from marketpilot.connectors.ledger import HttpMarketLedgerClient, InMemoryMarketLedger
from marketpilot.errors import ConnectorError, ConnectorRateLimitError, ServiceRejectedError
from marketpilot.models import Outcome


def _mock_response(status_code: int = 200, json_data=None) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = ""
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


@pytest.fixture
def client():
    c = HttpMarketLedgerClient("http://ledger.test")
    c._http = AsyncMock(spec=httpx.AsyncClient)
    return c


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  InMemoryMarketLedger
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestInMemoryMarketLedger:
    @pytest.mark.asyncio
    async def test_winners_share_the_pool(self):
        ledger = InMemoryMarketLedger()
        await ledger.take_position("m1", True, Decimal("3"), account="alice")
        await ledger.take_position("m1", True, Decimal("1"), account="bob")
        await ledger.take_position("m1", False, Decimal("4"), account="carol")

        ledger.settle("m1", Outcome.YES)

        assert await ledger.get_user_winnings("alice") == Decimal("6")
        assert await ledger.get_user_winnings("bob") == Decimal("2")
        assert await ledger.get_user_winnings("carol") == Decimal("0")

    @pytest.mark.asyncio
    async def test_cancelled_market_refunds(self):
        ledger = InMemoryMarketLedger()
        await ledger.take_position("m1", True, Decimal("2"), account="alice")
        await ledger.take_position("m1", False, Decimal("5"), account="bob")

        ledger.settle("m1", None)

        assert await ledger.get_user_winnings("alice") == Decimal("2")
        assert await ledger.get_user_winnings("bob") == Decimal("5")

    @pytest.mark.asyncio
    async def test_no_winner_refunds(self):
        ledger = InMemoryMarketLedger()
        await ledger.take_position("m1", False, Decimal("2"), account="alice")

        ledger.settle("m1", Outcome.YES)

        assert await ledger.get_user_winnings("alice") == Decimal("2")

    @pytest.mark.asyncio
    async def test_claim_pays_once(self):
        ledger = InMemoryMarketLedger()
        await ledger.take_position("m1", True, Decimal("1.5"), account="alice")
        ledger.settle("m1", Outcome.YES)

        assert await ledger.claim_winnings("alice") == Decimal("1.5")
        assert ledger.claimed["alice"] == Decimal("1.5")
        with pytest.raises(ServiceRejectedError, match="Nothing to claim"):
            await ledger.claim_winnings("alice")

    @pytest.mark.asyncio
    async def test_rejects_settled_market_and_bad_stake(self):
        ledger = InMemoryMarketLedger()
        ledger.settle("m1", Outcome.NO)

        with pytest.raises(ServiceRejectedError, match="already settled"):
            await ledger.take_position("m1", True, Decimal("1"), account="alice")
        with pytest.raises(ServiceRejectedError, match="positive"):
            await ledger.take_position("m2", True, Decimal("0"), account="alice")
        with pytest.raises(ServiceRejectedError):
            ledger.settle("m1", Outcome.YES)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  HttpMarketLedgerClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestHttpMarketLedgerClient:
    @pytest.mark.asyncio
    async def test_take_position_sends_decimal_string(self, client):
        client._http.request.return_value = _mock_response(json_data={"ok": True})

        await client.take_position("m1", False, Decimal("2.50"), account="agent-1")

        client._http.request.assert_awaited_once_with(
            "POST",
            "/positions",
            json={"market_id": "m1", "side": False, "amount": "2.50", "account": "agent-1"},
        )

    @pytest.mark.asyncio
    async def test_winnings_parsed_as_decimal(self, client):
        client._http.request.return_value = _mock_response(json_data={"amount": "0.75"})

        assert await client.get_user_winnings("agent-1") == Decimal("0.75")
        client._http.request.assert_awaited_once_with("GET", "/winnings/agent-1")

    @pytest.mark.asyncio
    async def test_claim(self, client):
        client._http.request.return_value = _mock_response(json_data={"amount": 3})

        assert await client.claim_winnings("agent-1") == Decimal("3")

    @pytest.mark.asyncio
    async def test_claim_is_not_retried_on_rate_limit(self, client):
        client._http.request.return_value = _mock_response(status_code=429)

        with pytest.raises(ConnectorRateLimitError):
            await client.claim_winnings("agent-1")
        assert client._http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_rejected_position(self, client):
        client._http.request.return_value = _mock_response(
            status_code=409, json_data={"error": "market closed"}
        )

        with pytest.raises(ServiceRejectedError, match="market closed"):
            await client.take_position("m1", True, Decimal("1"), account="agent-1")

    @pytest.mark.asyncio
    async def test_malformed_amount(self, client):
        client._http.request.return_value = _mock_response(json_data={"amount": "lots"})

        with pytest.raises(ConnectorError, match="Malformed amount"):
            await client.get_user_winnings("agent-1")
