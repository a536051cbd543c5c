"""Tests for marketpilot.config — settings and YAML policy files."""

from decimal import Decimal

import pydantic
import pytest

from marketpilot.config import AgentSettings, load_policy
from marketpilot.errors import ConfigurationError


class TestAgentSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MARKETPILOT_AGENT_ID", raising=False)
        settings = AgentSettings(_env_file=None)

        assert settings.execution_interval == 30
        assert settings.max_executions == 10
        assert settings.model_name == "gemini-2.5-flash"
        assert settings.requires_trusted_execution is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MARKETPILOT_AGENT_ID", "agent-7")
        monkeypatch.setenv("MARKETPILOT_MAX_BET_SIZE", "2.5")

        settings = AgentSettings(_env_file=None)

        assert settings.agent_id == "agent-7"
        assert settings.max_bet_size == Decimal("2.5")

    def test_betting_config_from_flat_fields(self):
        settings = AgentSettings(
            _env_file=None, min_bet=Decimal("0.5"), max_bet_size=Decimal("3"), min_confidence=75
        )

        config = settings.betting_config()

        assert config.min_bet == Decimal("0.5")
        assert config.max_bet_size == Decimal("3")
        assert config.min_confidence == 75
        assert config.is_valid


class TestLoadPolicy:
    def test_yaml_amounts_become_exact_decimals(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("min_bet: 0.1\nmax_bet_size: 2\nmin_confidence: 70\nmax_active_positions: 3\n")

        config = load_policy(path)

        assert config.min_bet == Decimal("0.1")
        assert config.max_bet_size == Decimal("2")
        assert config.min_confidence == 70
        assert config.max_active_positions == 3

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_policy(path).min_confidence == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_policy(tmp_path / "nope.yaml")

    def test_bad_field_type(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("min_confidence: lots\n")

        with pytest.raises(pydantic.ValidationError):
            load_policy(path)

    def test_bounds_checked_separately(self, tmp_path):
        path = tmp_path / "inverted.yaml"
        path.write_text("min_bet: 5\nmax_bet_size: 1\n")

        config = load_policy(path)

        assert not config.is_valid
        with pytest.raises(ConfigurationError) as exc_info:
            config.check()
        assert exc_info.value.field == "max_bet_size"
