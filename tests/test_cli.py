"""Tests for marketpilot.cli — simulate and deploy entry points."""

from decimal import Decimal

import pytest

from marketpilot import cli
from marketpilot.config import AgentSettings
from marketpilot.connectors.inference import GeminiInferenceService
from marketpilot.connectors.markets import InMemoryMarketData
from marketpilot.connectors.scheduler import TickScheduler


@pytest.fixture
def settings():
    return AgentSettings(
        _env_file=None,
        agent_id="sim-agent",
        owner="sim-owner",
        execution_interval=2,
        max_executions=6,
        max_bet_size=Decimal("1"),
    )


class TestSimulate:
    @pytest.mark.asyncio
    async def test_runs_to_completion(self, settings, capsys):
        code = await cli.simulate(settings, ticks=20, markets=3, fund=Decimal("5"), seed=3)

        out = capsys.readouterr().out
        assert code == 0
        assert "Simulating 20 ticks with 3 markets" in out
        assert "Agent state:" in out
        assert "requests_sent:" in out


class TestMain:
    def test_deploy_requires_collaborator_urls(self, settings, monkeypatch, capsys):
        monkeypatch.setattr(cli, "get_settings", lambda: settings)

        assert cli.main(["deploy", "--fund", "1"]) == 1
        assert "MARKETPILOT_MARKET_DATA_URL" in capsys.readouterr().out

    def test_simulate_command(self, settings, monkeypatch):
        monkeypatch.setattr(cli, "get_settings", lambda: settings)

        assert cli.main(["simulate", "--ticks", "5", "--markets", "1"]) == 0

    def test_unknown_command_exits(self):
        with pytest.raises(SystemExit):
            cli.main(["launch"])


class TestMetricsOutput:
    @pytest.mark.asyncio
    async def test_metrics_file_written(self, settings, tmp_path):
        path = tmp_path / "metrics.prom"

        await cli.simulate(settings, ticks=4, markets=1, fund=Decimal("2"), seed=1, metrics_out=path)

        assert "marketpilot_ticks_total" in path.read_text()


class TestCollaboratorReport:
    @pytest.mark.asyncio
    async def test_lists_health_of_each_collaborator(self, capsys):
        connectors = [InMemoryMarketData(), GeminiInferenceService(), TickScheduler()]

        listing = await cli._report_collaborators(connectors)

        assert [(c["name"], c["healthy"]) for c in listing] == [
            ("memory_markets", True),
            ("gemini", False),
            ("tick_scheduler", True),
        ]
        out = capsys.readouterr().out
        assert "❌ gemini" in out
        assert "✅ tick_scheduler" in out
