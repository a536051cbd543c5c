"""
Agent Configuration — Settings for one deployed MarketPilot agent.

The settings manage:
  - Agent identity (agent id, owner), logging and tracing
  - Scheduling (execution interval, max executions, start offset)
  - Inference (model, trusted execution, callback budget)
  - Collaborator endpoints (market data, ledger)
  - Default betting policy (overridable from a YAML policy file)
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketpilot.models import BettingConfig

# Host chain limit on the recurring-execution interval.
MAX_EXECUTION_INTERVAL = 500


class AgentSettings(BaseSettings):
    """Agent-wide settings, read from ``MARKETPILOT_*`` env vars and ``.env`` files."""

    model_config = SettingsConfigDict(
        env_prefix="MARKETPILOT_",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    # ── Identity ──────────────────────────────────────────────────────
    agent_id: str = "agent-0"
    owner: str = "owner-0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    json_logs: bool = False
    tracing_enabled: bool = False
    otlp_endpoint: str = ""

    # ── Scheduling ────────────────────────────────────────────────────
    execution_interval: int = 30
    max_executions: int = 10
    schedule_start_offset: int = 1
    scheduler_tick_seconds: float = 2.0
    execution_gas_limit: int = 3_000_000

    # ── Inference ─────────────────────────────────────────────────────
    model_name: str = "gemini-2.5-flash"
    requires_trusted_execution: bool = False
    callback_gas_limit: int = 500_000
    google_api_key: str = ""

    # ── Collaborators ─────────────────────────────────────────────────
    market_data_url: str = ""
    ledger_url: str = ""

    # ── Default betting policy ────────────────────────────────────────
    min_bet: Decimal = Decimal("0.01")
    max_bet_size: Decimal = Decimal("1")
    min_confidence: int = 60
    risk_threshold: int = 50
    max_active_positions: int = 5
    high_risk_enabled: bool = False

    def betting_config(self) -> BettingConfig:
        """Default policy built from the flat settings fields."""
        return BettingConfig(
            min_bet=self.min_bet,
            max_bet_size=self.max_bet_size,
            min_confidence=self.min_confidence,
            risk_threshold=self.risk_threshold,
            max_active_positions=self.max_active_positions,
            high_risk_enabled=self.high_risk_enabled,
        )


@lru_cache
def get_settings() -> AgentSettings:
    """Singleton accessor — parsed once, cached forever."""
    return AgentSettings()


def load_policy(path: Path) -> BettingConfig:
    """
    Load a BettingConfig from a YAML policy file.

    Args:
        path: Path to a YAML mapping with BettingConfig fields.

    Returns:
        The parsed BettingConfig. Bounds are not checked here; activation
        and policy updates run ``BettingConfig.check()``.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the YAML is invalid.
        pydantic.ValidationError: If the fields do not match the schema.
    """
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found at {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    # Amounts are quoted so they parse as exact decimals.
    for key in ("min_bet", "max_bet_size"):
        if key in data and not isinstance(data[key], str):
            data[key] = str(data[key])

    return BettingConfig(**data)
