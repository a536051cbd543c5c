"""
MarketPilot Core — the agent orchestration primitives.

  - AgentRuntime / AdminSession: the fixed orchestration core and its owner surface
  - AgentLifecycle / AgentState: activation gate and trigger-service contract
  - RequestRegistry: request id → context correlation, resolved exactly once
  - InferenceGateway: non-throwing inference requests (single-flight or keyed)
  - AgentStrategy: the four pluggable hooks
  - SignalBus: event-equivalent signals
  - Ok / Failure: result union for external calls
"""

from marketpilot.core.bus import AgentSignal, SignalBus, get_signal_bus, reset_signal_bus
from marketpilot.core.gateway import InferenceGateway, RequestDiscipline
from marketpilot.core.lifecycle import AgentLifecycle, AgentState
from marketpilot.core.registry import RequestRecord, RequestRegistry
from marketpilot.core.result import Failure, Ok, Result, attempt
from marketpilot.core.runtime import AdminSession, AgentRuntime
from marketpilot.core.strategy import AgentStrategy, InvocationContext, PreparedRequest, Skip

__all__ = [
    "AgentRuntime",
    "AdminSession",
    "AgentLifecycle",
    "AgentState",
    "RequestRegistry",
    "RequestRecord",
    "InferenceGateway",
    "RequestDiscipline",
    "AgentStrategy",
    "InvocationContext",
    "PreparedRequest",
    "Skip",
    "SignalBus",
    "AgentSignal",
    "get_signal_bus",
    "reset_signal_bus",
    "Ok",
    "Failure",
    "Result",
    "attempt",
]
