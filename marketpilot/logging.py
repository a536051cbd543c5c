"""
Structured logging for agents and the CLI.

``setup_logging()`` runs once per process. Every event carries the app
name; ``bind_agent()`` adds the agent's identity to everything logged
afterwards in the current context, so runtime, lifecycle and connector
events of one agent can be told apart in a shared log stream.
"""

from __future__ import annotations

import logging

import structlog

from marketpilot.errors import ConfigurationError
from marketpilot.version import APP_NAME


def resolve_level(name: str) -> int:
    """
    Raises:
        ConfigurationError: If ``name`` is not a standard level name.
    """
    levels = logging.getLevelNamesMapping()
    try:
        return levels[name.strip().upper()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown log level {name!r}", field="log_level"
        ) from None


def _stamp_app(_logger, _method, event_dict: dict) -> dict:
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog.

    Args:
        level: Level name from settings, e.g. ``"DEBUG"`` or ``"warning"``.
        json_output: One JSON object per line instead of colored console output.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        _stamp_app,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_agent(agent_id: str, owner: str) -> None:
    structlog.contextvars.bind_contextvars(agent_id=agent_id, owner=owner)
