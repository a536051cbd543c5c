"""
Connectors — the agent's external collaborators.

Each contract is an ABC with an in-process implementation (for local
simulation and tests) and a networked one:

  - TriggerService: TickScheduler
  - InferenceService: LocalInferenceService, GeminiInferenceService
  - MarketDataSource: InMemoryMarketData, HttpMarketDataClient
  - MarketLedger: InMemoryMarketLedger, HttpMarketLedgerClient
"""

from marketpilot.connectors.base_connector import AgentEndpoint, BaseConnector, ConnectorInfo
from marketpilot.connectors.inference import (
    GeminiInferenceService,
    InferenceService,
    LocalInferenceService,
)
from marketpilot.connectors.ledger import (
    HttpMarketLedgerClient,
    InMemoryMarketLedger,
    MarketLedger,
)
from marketpilot.connectors.markets import (
    HttpMarketDataClient,
    InMemoryMarketData,
    MarketDataSource,
)
from marketpilot.connectors.scheduler import TickScheduler, TriggerService

__all__ = [
    "AgentEndpoint",
    "BaseConnector",
    "ConnectorInfo",
    "TriggerService",
    "TickScheduler",
    "InferenceService",
    "LocalInferenceService",
    "GeminiInferenceService",
    "MarketDataSource",
    "InMemoryMarketData",
    "HttpMarketDataClient",
    "MarketLedger",
    "InMemoryMarketLedger",
    "HttpMarketLedgerClient",
]
