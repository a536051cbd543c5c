"""
MarketPilot — Autonomous prediction-market agents.

Provides the orchestration core (lifecycle, request correlation, the
inference gateway), the collaborator contracts (trigger, inference,
market data, ledger) and the simple betting strategy built on them.
"""

from marketpilot.betting import BettingStrategy, PositionLedgerView, create_betting_agent
from marketpilot.config import AgentSettings, get_settings, load_policy
from marketpilot.core import (
    AdminSession,
    AgentRuntime,
    AgentState,
    AgentStrategy,
    Failure,
    InvocationContext,
    Ok,
    PreparedRequest,
    RequestDiscipline,
    RequestRegistry,
    SignalBus,
    Skip,
    get_signal_bus,
)
from marketpilot.models import BettingConfig, Market, Position, TickReport, TickStatus
from marketpilot.version import APP_NAME, VERSION

__all__ = [
    # Runtime
    "AgentRuntime",
    "AdminSession",
    "AgentState",
    "AgentStrategy",
    "InvocationContext",
    "PreparedRequest",
    "Skip",
    "RequestDiscipline",
    "RequestRegistry",
    "Ok",
    "Failure",
    # Signals
    "SignalBus",
    "get_signal_bus",
    # Betting
    "BettingStrategy",
    "PositionLedgerView",
    "create_betting_agent",
    # Models & config
    "BettingConfig",
    "Market",
    "Position",
    "TickReport",
    "TickStatus",
    "AgentSettings",
    "get_settings",
    "load_policy",
    "APP_NAME",
    "VERSION",
]
