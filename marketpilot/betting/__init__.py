"""Simple betting agent: market selection, bet sizing and position tracking."""

from marketpilot.betting.engine import BettingStrategy, create_betting_agent
from marketpilot.betting.positions import PositionLedgerView
from marketpilot.betting.prompts import DECISION_SCHEMA, build_prompt, decode_decision
from marketpilot.betting.sizing import compute_bet_size

__all__ = [
    "BettingStrategy",
    "create_betting_agent",
    "PositionLedgerView",
    "DECISION_SCHEMA",
    "build_prompt",
    "decode_decision",
    "compute_bet_size",
]
