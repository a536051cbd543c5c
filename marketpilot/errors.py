"""
Structured Error Taxonomy — Typed exceptions for MarketPilot agents.

Design principles:
  - Every error carries `retryable` + `error_code` for automated decisions
  - Hierarchy mirrors the agent layers: Lifecycle → Registry → Answer → Connector
  - Structured logging friendly: all errors serialize cleanly to JSON

External-call errors (the Connector layer) are raised inside connectors and
converted into ``Failure`` values before they reach the orchestration core.
"""

from __future__ import annotations

__all__ = [
    # Base
    "MarketPilotError",
    # Lifecycle layer
    "ConfigurationError",
    "UnauthorizedError",
    "AgentInactiveError",
    "ForbiddenInvocationError",
    # Request layer
    "RequestInFlightError",
    "DuplicateRequestError",
    "AlreadyProcessedError",
    "UnknownRequestError",
    # Answer layer
    "MalformedAnswerError",
    "InvalidOutputSchemaError",
    # Funds & positions
    "InsufficientFundsError",
    "PositionTakenError",
    # Connector layer
    "ConnectorError",
    "ConnectorUnavailableError",
    "ConnectorRateLimitError",
    "ServiceRejectedError",
]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Base
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MarketPilotError(Exception):
    """Root exception for MarketPilot.

    Attributes:
        retryable: If True, the caller should consider retrying the operation.
        error_code: Machine-readable code for dashboards and alerting.
    """

    retryable: bool = False
    error_code: str = "MARKETPILOT_ERROR"

    def __init__(self, message: str, *, detail: str | None = None):
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize for structured logging and signal payloads."""
        return {
            "error_code": self.error_code,
            "message": str(self),
            "detail": self.detail,
            "retryable": self.retryable,
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Lifecycle Layer — Activation, authorization, invocation origin
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ConfigurationError(MarketPilotError):
    """Policy bounds or collaborator wiring are invalid. Never auto-corrected."""

    error_code = "CONFIGURATION_INVALID"

    def __init__(self, message: str, *, field: str = "", **kwargs):
        self.field = field
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["field"] = self.field
        return d


class UnauthorizedError(MarketPilotError):
    """An administrative operation was attempted by someone other than the owner."""

    error_code = "UNAUTHORIZED"

    def __init__(self, message: str, *, caller: str = "", **kwargs):
        self.caller = caller
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["caller"] = self.caller
        return d


class AgentInactiveError(MarketPilotError):
    """Execution was requested while the agent is not active."""

    error_code = "AGENT_INACTIVE"


class ForbiddenInvocationError(MarketPilotError):
    """The execution entry point was invoked by a caller other than the agent itself."""

    error_code = "FORBIDDEN_INVOCATION"

    def __init__(self, message: str, *, caller: str = "", **kwargs):
        self.caller = caller
        super().__init__(message, **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Request Layer — Inference request correlation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RequestInFlightError(MarketPilotError):
    """The single-in-flight request path already has an outstanding request."""

    retryable = True
    error_code = "REQUEST_IN_FLIGHT"


class DuplicateRequestError(MarketPilotError):
    """A request identifier is already tracked by the registry."""

    error_code = "DUPLICATE_REQUEST"

    def __init__(self, message: str, *, request_id: str = "", **kwargs):
        self.request_id = request_id
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["request_id"] = self.request_id
        return d


class AlreadyProcessedError(DuplicateRequestError):
    """An answer for this request identifier was already resolved."""

    error_code = "ALREADY_PROCESSED"


class UnknownRequestError(DuplicateRequestError):
    """No record exists for this request identifier."""

    error_code = "UNKNOWN_REQUEST"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Answer Layer — Boundary decoding of structured answers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MalformedAnswerError(MarketPilotError):
    """A delivered answer does not decode into the expected typed values."""

    error_code = "MALFORMED_ANSWER"

    def __init__(self, message: str, *, field: str = "", **kwargs):
        self.field = field
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["field"] = self.field
        return d


class InvalidOutputSchemaError(MalformedAnswerError):
    """Output schema is not a flat object of integer/boolean/string properties."""

    error_code = "INVALID_OUTPUT_SCHEMA"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Funds & Positions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InsufficientFundsError(MarketPilotError):
    """Spendable balance does not cover the requested amount."""

    error_code = "INSUFFICIENT_FUNDS"


class PositionTakenError(MarketPilotError):
    """The agent already holds (or held) a position on this market."""

    error_code = "POSITION_TAKEN"

    def __init__(self, message: str, *, market_id: str = "", **kwargs):
        self.market_id = market_id
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["market_id"] = self.market_id
        return d


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Connector Layer — Errors from external collaborators
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ConnectorError(MarketPilotError):
    """Base for all collaborator errors (trigger, inference, market data, ledger)."""

    error_code = "CONNECTOR_ERROR"

    def __init__(self, message: str, *, connector_name: str | None = None, **kwargs):
        self.connector_name = connector_name or getattr(self, "connector_name", None)
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["connector_name"] = self.connector_name
        return d


class ConnectorUnavailableError(ConnectorError):
    """External service is unreachable or returning errors."""

    retryable = True
    error_code = "CONNECTOR_UNAVAILABLE"


class ConnectorRateLimitError(ConnectorError):
    """External service returned a rate limit error."""

    retryable = True
    error_code = "CONNECTOR_RATE_LIMIT"


class ServiceRejectedError(ConnectorError):
    """The external service understood the call and refused it with a reason."""

    error_code = "SERVICE_REJECTED"
