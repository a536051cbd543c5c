from dataclasses import dataclass
from decimal import Decimal

import pytest
from opentelemetry import trace

from marketpilot.betting.engine import BettingStrategy
from marketpilot.connectors.inference import LocalInferenceService
from marketpilot.connectors.ledger import InMemoryMarketLedger
from marketpilot.connectors.markets import InMemoryMarketData
from marketpilot.connectors.scheduler import TickScheduler
from marketpilot.core.bus import SignalBus, reset_signal_bus
from marketpilot.core.runtime import AgentRuntime
from marketpilot.models import BettingConfig, Market

AGENT_ID = "agent-1"
OWNER = "owner-1"


@pytest.fixture(autouse=True)
def disable_tracing():
    """Disable OpenTelemetry tracer console exports to prevent Pytest stdout closed exceptions."""
    from opentelemetry.sdk.trace import TracerProvider

    trace.set_tracer_provider(TracerProvider())
    yield


@pytest.fixture(autouse=True)
def reset_bus():
    reset_signal_bus()
    yield
    reset_signal_bus()


@pytest.fixture
def bus():
    return SignalBus()


def _make_market(market_id: str, name: str = "", **kwargs) -> Market:
    return Market(id=market_id, name=name or f"Market {market_id}", description="Test market", **kwargs)


@dataclass
class BettingEnv:
    """A betting agent wired to in-process collaborators."""

    bus: SignalBus
    markets: InMemoryMarketData
    ledger: InMemoryMarketLedger
    inference: LocalInferenceService
    scheduler: TickScheduler
    strategy: BettingStrategy
    runtime: AgentRuntime

    @property
    def admin(self):
        return self.runtime.admin(OWNER)

    async def activate(self, fund: Decimal = Decimal("10")) -> None:
        if fund:
            await self.admin.deposit(fund)
        await self.admin.set_active(True)

    async def tick(self):
        return await self.runtime.execute_agent_logic(caller=AGENT_ID)

    async def answer(self, request_id: str, decision: str = "yes", confidence: int = 70, rationale: str = "because"):
        return await self.inference.deliver(
            request_id,
            {"decision": decision, "confidence": confidence, "rationale": rationale},
        )

    def topics(self, topic: str) -> list:
        return self.bus.history(topic)


def _build_env(
    bus: SignalBus,
    *,
    markets: list[Market] | None = None,
    config: BettingConfig | None = None,
) -> BettingEnv:
    market_data = InMemoryMarketData(markets if markets is not None else [_make_market("m1"), _make_market("m2")])
    ledger = InMemoryMarketLedger()
    inference = LocalInferenceService()
    scheduler = TickScheduler()
    strategy = BettingStrategy(
        market_data,
        ledger,
        config=config or BettingConfig(min_bet=Decimal("1"), max_bet_size=Decimal("5"), min_confidence=60),
    )
    runtime = AgentRuntime(
        agent_id=AGENT_ID,
        owner=OWNER,
        strategy=strategy,
        inference=inference,
        scheduler=scheduler,
        bus=bus,
    )
    return BettingEnv(
        bus=bus,
        markets=market_data,
        ledger=ledger,
        inference=inference,
        scheduler=scheduler,
        strategy=strategy,
        runtime=runtime,
    )


@pytest.fixture
def env(bus) -> BettingEnv:
    return _build_env(bus)


@pytest.fixture
def make_market():
    return _make_market


@pytest.fixture
def env_factory(bus):
    """Build a BettingEnv with custom markets or policy on the shared test bus."""

    def factory(**kwargs) -> BettingEnv:
        return _build_env(bus, **kwargs)

    return factory
