"""Tests for marketpilot.betting.positions — one position per market."""

from decimal import Decimal

import pytest

from marketpilot.betting.positions import PositionLedgerView
from marketpilot.errors import PositionTakenError
from marketpilot.models import Position


def _position(market_id: str, amount: str = "1") -> Position:
    return Position(market_id=market_id, amount=Decimal(amount), side=True, confidence=70)


class TestPositionLedgerView:
    def test_open_and_guard(self):
        view = PositionLedgerView()

        view.open(_position("m1"))

        assert view.position_taken("m1")
        assert not view.position_taken("m2")
        assert view.get("m1").amount == Decimal("1")
        assert view.active_count() == 1

    def test_second_position_on_same_market_refused(self):
        view = PositionLedgerView()
        view.open(_position("m1", "1"))

        with pytest.raises(PositionTakenError) as exc_info:
            view.open(_position("m1", "2"))

        assert exc_info.value.market_id == "m1"
        assert view.get("m1").amount == Decimal("1")
        assert len(view) == 1

    def test_settled_positions_stop_counting_but_stay_taken(self):
        view = PositionLedgerView()
        view.open(_position("m1"))
        view.open(_position("m2"))

        assert view.settle("m1") is True
        assert view.settle("m1") is False

        assert view.active_count() == 1
        assert view.position_taken("m1")
        with pytest.raises(PositionTakenError):
            view.open(_position("m1"))

    def test_stats(self):
        view = PositionLedgerView()
        view.open(_position("m1"))
        view.open(_position("m2"))
        view.settle("m2")
        view.record_claim(Decimal("1.5"))
        view.record_claim(Decimal("0.5"))

        stats = view.stats()

        assert stats.total_bets_placed == 2
        assert stats.active_positions == 1
        assert stats.total_winnings == Decimal("2.0")
        assert view.claims == 2
