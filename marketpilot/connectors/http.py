"""
Shared async HTTP plumbing for networked collaborators.

Wraps an ``httpx.AsyncClient`` and maps transport and status failures onto
the connector error taxonomy:

  - connect errors / timeouts → ``ConnectorUnavailableError``
  - 429                       → ``ConnectorRateLimitError`` (retried via tenacity)
  - 4xx with a reason         → ``ServiceRejectedError``
  - 5xx                       → ``ConnectorUnavailableError``
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from marketpilot.errors import (
    ConnectorRateLimitError,
    ConnectorUnavailableError,
    ServiceRejectedError,
)

logger = structlog.get_logger(__name__)

retry_on_rate_limit = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(ConnectorRateLimitError),
    reraise=True,
)


def build_async_client(base_url: str, *, timeout: float = 15.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        http2=True,
        headers={"Content-Type": "application/json"},
        timeout=httpx.Timeout(timeout, connect=5.0, read=timeout, pool=5.0),
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        ),
    )


class HttpCollaborator:
    """Mixin for connectors that talk JSON over HTTP."""

    name: str = "http"

    def __init__(self, base_url: str, *, timeout: float = 15.0) -> None:
        self._base_url = base_url
        self._http = build_async_client(base_url, timeout=timeout)

    async def teardown(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        start = time.monotonic()
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            raise ConnectorUnavailableError(
                f"Connection failed: {e}", connector_name=self.name
            ) from e
        except httpx.TimeoutException as e:
            raise ConnectorUnavailableError(
                f"Request timed out: {e}", connector_name=self.name
            ) from e

        latency_ms = (time.monotonic() - start) * 1000

        if resp.status_code == 429:
            logger.warning("collaborator_rate_limited", connector=self.name, path=path)
            raise ConnectorRateLimitError("Rate limit exceeded", connector_name=self.name)
        if resp.status_code >= 500:
            raise ConnectorUnavailableError(
                f"{self.name} error: {resp.status_code} — {resp.text}",
                connector_name=self.name,
                detail=str(resp.status_code),
            )
        if resp.status_code >= 400:
            raise ServiceRejectedError(
                _reason(resp),
                connector_name=self.name,
                detail=str(resp.status_code),
            )

        logger.debug(
            "collaborator_request",
            connector=self.name,
            method=method,
            path=path,
            status=resp.status_code,
            latency_ms=round(latency_ms),
        )
        return resp.json()


def _reason(resp: httpx.Response) -> str:
    """Prefer the service's own ``reason``/``error`` field over the raw body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("reason") or body.get("error") or body)
    return str(body)
