"""
Result — Explicit success/failure union for calls across external boundaries.

Connector exceptions stop at the seam that calls them: the gateway and the
runtime convert them into a ``Failure`` and the orchestration core branches
on ``isinstance(result, Failure)`` instead of relying on exception
propagation.

Usage::

    result = await gateway.request(...)
    if isinstance(result, Failure):
        logger.warning("no_request_this_round", reason=result.reason)
    else:
        request_id = result.value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar, Union

from marketpilot.errors import MarketPilotError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """
    Non-fatal failure of an external call.

    Attributes:
        reason: Human-readable reason (a service rejection string or the
                repr of an unexpected error).
        error_code: Machine-readable code, taken from the error taxonomy.
        retryable: Whether the next tick may reasonably try again.
    """

    reason: str
    error_code: str = "EXTERNAL_CALL_FAILED"
    retryable: bool = True

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, exc: BaseException) -> "Failure":
        """Convert a connector error (or an unrecognized one) into a Failure."""
        if isinstance(exc, MarketPilotError):
            return cls(reason=str(exc), error_code=exc.error_code, retryable=exc.retryable)
        return cls(
            reason=f"{type(exc).__name__}: {exc}",
            error_code="UNEXPECTED_ERROR",
            retryable=True,
        )

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "error_code": self.error_code,
            "retryable": self.retryable,
        }


Result = Union[Ok[T], Failure]


async def attempt(call: Awaitable[T]) -> Result[T]:
    """Await an external call and capture any error as a ``Failure``."""
    try:
        return Ok(await call)
    except Exception as exc:
        return Failure.from_exception(exc)


__all__ = ["Ok", "Failure", "Result", "attempt"]
