"""
RequestRegistry — Correlates asynchronous answers with the context that asked.

An agent's execution ends as soon as it issues an inference request; the
answer arrives later as a separate invocation that knows nothing but the
request id. The registry is the only thing that survives between the two:
``open()`` records *why* we asked, ``resolve()`` hands that context back
exactly once.

Invariants:
  - A request id is opened at most once (``DuplicateRequestError``).
  - A record is resolved at most once; later resolutions raise
    ``AlreadyProcessedError`` instead of returning the context again, so a
    duplicated delivery can never re-apply an action.
  - Records are never reused or deleted. An answer that never arrives
    leaves its record pending (one entry per issued request).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from marketpilot.errors import (
    AlreadyProcessedError,
    DuplicateRequestError,
    UnknownRequestError,
)

logger = structlog.get_logger(__name__)


@dataclass
class RequestRecord:
    """One outstanding (or finished) inference request."""

    request_id: str
    context: str
    created_at: datetime
    resolved: bool = False
    resolved_at: datetime | None = None
    cancelled: bool = False


class RequestRegistry:
    """In-memory request id → context map for a single agent."""

    def __init__(self) -> None:
        self._records: dict[str, RequestRecord] = {}

    def open(self, request_id: str, context: str) -> RequestRecord:
        """
        Record a pending request.

        Raises:
            DuplicateRequestError: If ``request_id`` is already tracked.
        """
        if request_id in self._records:
            raise DuplicateRequestError(
                f"Request {request_id} is already tracked", request_id=request_id
            )
        record = RequestRecord(
            request_id=request_id,
            context=context,
            created_at=datetime.now(timezone.utc),
        )
        self._records[request_id] = record
        logger.debug("request_opened", request_id=request_id, context=context)
        return record

    def resolve(self, request_id: str) -> str:
        """
        Mark a request resolved and return its context.

        Raises:
            UnknownRequestError: If the id was never opened here.
            AlreadyProcessedError: If the id was already resolved or cancelled.
        """
        record = self._records.get(request_id)
        if record is None:
            raise UnknownRequestError(
                f"No request {request_id} is tracked", request_id=request_id
            )
        if record.resolved:
            raise AlreadyProcessedError(
                f"Request {request_id} was already processed", request_id=request_id
            )
        record.resolved = True
        record.resolved_at = datetime.now(timezone.utc)
        logger.debug("request_resolved", request_id=request_id, context=record.context)
        return record.context

    def cancel(self, request_id: str) -> bool:
        """Resolve a pending record without handing out its context."""
        record = self._records.get(request_id)
        if record is None or record.resolved:
            return False
        record.resolved = True
        record.cancelled = True
        record.resolved_at = datetime.now(timezone.utc)
        logger.info("request_cancelled", request_id=request_id, context=record.context)
        return True

    def cancel_all(self) -> int:
        return sum(1 for record in self.pending() if self.cancel(record.request_id))

    # ── Introspection ────────────────────────────────────────────────

    def get(self, request_id: str) -> RequestRecord | None:
        return self._records.get(request_id)

    def pending(self) -> list[RequestRecord]:
        return [r for r in self._records.values() if not r.resolved]

    def is_pending(self, request_id: str) -> bool:
        record = self._records.get(request_id)
        return record is not None and not record.resolved

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._records

    def __len__(self) -> int:
        return len(self._records)
