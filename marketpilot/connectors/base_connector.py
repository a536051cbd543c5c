"""
BaseConnector — Abstract base class for every external collaborator.

The agent core only talks to the outside world through connectors: the
trigger service, the inference service, the market-data source and the
market ledger. Each one has an in-process implementation (tests,
simulation) and a networked one.

Connectors that call back *into* an agent do so through an
``AgentEndpoint``: the trigger service invokes the execution entry point,
the inference service invokes the answer callback.

Usage:
    class MyConnector(BaseConnector):
        name = "my_service"
        description = "Connects to My Service API"

        async def setup(self) -> None:
            self._client = MyServiceClient()
"""

from __future__ import annotations

import abc
from typing import Any

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class ConnectorInfo(BaseModel):
    """Summary info for listing connectors."""

    name: str
    description: str
    healthy: bool = True


class BaseConnector(abc.ABC):
    """
    Abstract base class for all collaborator connectors.

    Subclasses MUST define:
      - name: str — Unique identifier (e.g. "tick_scheduler", "gemini")
      - description: str — What this connector does

    Subclasses MAY override:
      - setup(): One-time initialization (auth, client creation)
      - teardown(): Cleanup (close connections, cancel tasks)
      - health_check(): Verify the connection is alive
    """

    name: str = ""
    description: str = ""

    async def setup(self) -> None:
        """Called once before the agent starts. Override for initialization."""

    async def teardown(self) -> None:
        """Called on shutdown. Override for cleanup."""

    async def health_check(self) -> bool:
        return True

    async def get_info(self) -> ConnectorInfo:
        return ConnectorInfo(
            name=self.name,
            description=self.description,
            healthy=await self.health_check(),
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class AgentEndpoint(abc.ABC):
    """
    The surface an agent exposes to collaborators that invoke it.

    ``dispatch`` is the single entry point: the caller names the entry
    point (the encoded no-argument execution call, or a callback selector)
    and identifies itself so the agent can refuse spoofed invocations.
    """

    @property
    @abc.abstractmethod
    def agent_id(self) -> str: ...

    @abc.abstractmethod
    async def dispatch(self, entry_point: str, *, caller: str, **kwargs: Any) -> Any: ...
