#!/usr/bin/env python3
"""
MarketPilot CLI — Deploy or simulate a betting agent.

Usage:
    marketpilot deploy [--fund 5] [--policy policy.yaml] [--output deployment.json]
    marketpilot simulate [--ticks 120] [--markets 3] [--fund 5] [--seed 7] [--metrics metrics.prom]

``deploy`` wires the agent to the Gemini inference service and the HTTP
market-data / ledger collaborators configured in ``MARKETPILOT_*`` settings,
funds it, activates it, registers its periodic execution and then drives
the in-process scheduler until the schedule is exhausted.

``simulate`` runs the same agent against in-process collaborators with a
random responder in place of the model.
"""

import argparse
import asyncio
import json
import random
import sys
from decimal import Decimal
from pathlib import Path

import structlog

from marketpilot.betting import BettingStrategy, create_betting_agent
from marketpilot.config import AgentSettings, get_settings, load_policy
from marketpilot.connectors.base_connector import BaseConnector
from marketpilot.connectors.inference import (
    GeminiInferenceService,
    InferenceCall,
    LocalInferenceService,
)
from marketpilot.connectors.ledger import HttpMarketLedgerClient, InMemoryMarketLedger
from marketpilot.connectors.markets import HttpMarketDataClient, InMemoryMarketData
from marketpilot.connectors.scheduler import TickScheduler
from marketpilot.core.result import Failure
from marketpilot.core.runtime import AgentRuntime
from marketpilot.errors import MarketPilotError
from marketpilot.logging import bind_agent, setup_logging
from marketpilot.models import Market, MarketStatus, Outcome
from marketpilot.observability import get_metrics, setup_tracing
from marketpilot.version import APP_NAME, VERSION

logger = structlog.get_logger(__name__)


def _print_summary(runtime: AgentRuntime) -> dict:
    """Print the agent's state and betting stats; return them as a dict."""
    state = runtime.get_state().model_dump(mode="json")
    summary = {"state": state}
    if isinstance(runtime.strategy, BettingStrategy):
        summary["stats"] = runtime.strategy.get_betting_stats().model_dump(mode="json")

    print("📊 Agent state:")
    for key, value in state.items():
        print(f"  {key}: {value}")
    if "stats" in summary:
        print("🎯 Betting stats:")
        for key, value in summary["stats"].items():
            print(f"  {key}: {value}")
    return summary


async def _report_collaborators(connectors: list[BaseConnector]) -> list[dict]:
    """Print each collaborator's health; return the listing for the deployment summary."""
    infos = [await connector.get_info() for connector in connectors]
    print("🔌 Collaborators:")
    for info in infos:
        mark = "✅" if info.healthy else "❌"
        print(f"  {mark} {info.name}: {info.description}")
    return [info.model_dump() for info in infos]


async def _bring_up(runtime: AgentRuntime, settings: AgentSettings, fund: Decimal) -> None:
    """Fund, activate and schedule the agent, as its owner."""
    admin = runtime.admin(settings.owner)
    if fund > 0:
        await admin.deposit(fund)
    await admin.set_active(True)
    result = await admin.setup_periodic_execution()
    if isinstance(result, Failure):
        raise MarketPilotError(f"Periodic execution not registered: {result.reason}")


# ── deploy ───────────────────────────────────────────────────────────


async def deploy(
    settings: AgentSettings,
    *,
    fund: Decimal,
    policy: Path | None,
    output: Path,
) -> int:
    if not settings.market_data_url or not settings.ledger_url:
        print("Error: MARKETPILOT_MARKET_DATA_URL and MARKETPILOT_LEDGER_URL must be set.")
        return 1

    market_data = HttpMarketDataClient(settings.market_data_url)
    ledger = HttpMarketLedgerClient(settings.ledger_url)
    inference = GeminiInferenceService(api_key=settings.google_api_key)
    scheduler = TickScheduler()
    connectors = [market_data, ledger, inference, scheduler]

    runtime = create_betting_agent(
        settings,
        market_data=market_data,
        ledger=ledger,
        inference=inference,
        scheduler=scheduler,
        config=load_policy(policy) if policy else None,
    )

    print(f"🚀 Deploying {APP_NAME} agent {settings.agent_id} (v{VERSION})")
    for connector in connectors:
        await connector.setup()
    try:
        await _bring_up(runtime, settings, fund)
        summary = _print_summary(runtime)
        summary["collaborators"] = await _report_collaborators(connectors)
        summary.update(
            {
                "agent_id": settings.agent_id,
                "owner": settings.owner,
                "model": settings.model_name,
                "market_data_url": settings.market_data_url,
                "ledger_url": settings.ledger_url,
                "version": VERSION,
            }
        )
        output.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        print(f"✅ Deployment written to {output}")

        await scheduler.run(settings.scheduler_tick_seconds)
        _print_summary(runtime)
    finally:
        for connector in reversed(connectors):
            await connector.teardown()
    return 0


# ── simulate ─────────────────────────────────────────────────────────


def _random_responder(rng: random.Random):
    async def respond(call: InferenceCall) -> dict:
        return {
            "decision": rng.choice(["yes", "no"]),
            "confidence": rng.randint(0, 100),
            "rationale": "simulated answer",
        }

    return respond


async def simulate(
    settings: AgentSettings,
    *,
    ticks: int,
    markets: int,
    fund: Decimal,
    seed: int,
    metrics_out: Path | None = None,
) -> int:
    rng = random.Random(seed)
    market_data = InMemoryMarketData(
        [
            Market(id=f"market-{i}", name=f"Simulated market {i}", description="Will it happen?")
            for i in range(1, markets + 1)
        ]
    )
    ledger = InMemoryMarketLedger()
    inference = LocalInferenceService(responder=_random_responder(rng))
    scheduler = TickScheduler()

    runtime = create_betting_agent(
        settings,
        market_data=market_data,
        ledger=ledger,
        inference=inference,
        scheduler=scheduler,
    )

    print(f"🧪 Simulating {ticks} ticks with {markets} markets")
    await _bring_up(runtime, settings, fund)

    settle_every = max(settings.execution_interval * 2, 1)
    for tick in range(1, ticks + 1):
        await scheduler.advance(1)
        await inference.deliver_pending()
        if tick % settle_every == 0:
            _settle_one(market_data, ledger, rng)

    _print_summary(runtime)
    if metrics_out is not None:
        metrics_out.write_bytes(get_metrics())
        print(f"📈 Metrics written to {metrics_out}")
    return 0


def _settle_one(market_data: InMemoryMarketData, ledger: InMemoryMarketLedger, rng: random.Random) -> None:
    for market in market_data.markets:
        if market.status is MarketStatus.PENDING:
            outcome = rng.choice([Outcome.YES, Outcome.NO])
            market_data.set_status(market.id, MarketStatus.RESOLVED, outcome)
            ledger.settle(market.id, outcome)
            logger.info("market_settled", market_id=market.id, outcome=outcome.value)
            return


# ── Entry point ──────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", help="Deploy and run a betting agent")
    deploy_parser.add_argument("--fund", type=Decimal, default=Decimal("5"), help="Initial balance")
    deploy_parser.add_argument("--policy", type=Path, help="YAML betting policy file")
    deploy_parser.add_argument(
        "--output",
        type=Path,
        default=Path("deployment.json"),
        help="Where to write the deployment summary",
    )

    sim_parser = subparsers.add_parser("simulate", help="Run an in-process simulation")
    sim_parser.add_argument("--ticks", type=int, default=120, help="Ticks to simulate")
    sim_parser.add_argument("--markets", type=int, default=3, help="Markets to create")
    sim_parser.add_argument("--fund", type=Decimal, default=Decimal("5"), help="Initial balance")
    sim_parser.add_argument("--seed", type=int, default=7, help="Responder random seed")
    sim_parser.add_argument("--metrics", type=Path, help="Write Prometheus metrics here when done")

    args = parser.parse_args(argv)

    settings = get_settings()

    try:
        setup_logging(level=settings.log_level, json_output=settings.json_logs)
        bind_agent(settings.agent_id, settings.owner)
        if settings.tracing_enabled:
            setup_tracing(otlp_endpoint=settings.otlp_endpoint or None)

        if args.command == "deploy":
            return asyncio.run(
                deploy(settings, fund=args.fund, policy=args.policy, output=args.output)
            )
        return asyncio.run(
            simulate(
                settings,
                ticks=args.ticks,
                markets=args.markets,
                fund=args.fund,
                seed=args.seed,
                metrics_out=args.metrics,
            )
        )
    except MarketPilotError as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
