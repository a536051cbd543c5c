"""
Tests for marketpilot.core.registry — request id → context correlation.

Covers:
  - open / resolve round trip
  - Duplicate open, unknown and repeated resolution
  - Cancellation (single and all pending)
"""

import pytest

from marketpilot.core.registry import RequestRegistry
from marketpilot.errors import (
    AlreadyProcessedError,
    DuplicateRequestError,
    UnknownRequestError,
)


@pytest.fixture
def registry():
    return RequestRegistry()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Open / Resolve
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestOpenResolve:
    def test_open_records_pending(self, registry):
        record = registry.open("req-1", "market-a")

        assert record.request_id == "req-1"
        assert record.context == "market-a"
        assert record.resolved is False
        assert registry.is_pending("req-1")
        assert "req-1" in registry
        assert len(registry) == 1

    def test_resolve_returns_context_once(self, registry):
        registry.open("req-1", "market-a")

        assert registry.resolve("req-1") == "market-a"
        assert not registry.is_pending("req-1")
        assert registry.get("req-1").resolved_at is not None

    def test_second_resolution_is_already_processed(self, registry):
        registry.open("req-1", "market-a")
        registry.resolve("req-1")

        with pytest.raises(AlreadyProcessedError) as exc_info:
            registry.resolve("req-1")
        assert exc_info.value.request_id == "req-1"

    def test_duplicate_open_rejected(self, registry):
        registry.open("req-1", "market-a")

        with pytest.raises(DuplicateRequestError):
            registry.open("req-1", "market-b")
        assert registry.get("req-1").context == "market-a"

    def test_resolved_id_is_never_reused(self, registry):
        registry.open("req-1", "market-a")
        registry.resolve("req-1")

        with pytest.raises(DuplicateRequestError):
            registry.open("req-1", "market-a")

    def test_unknown_request(self, registry):
        with pytest.raises(UnknownRequestError):
            registry.resolve("nope")

    def test_unknown_and_processed_share_the_duplicate_family(self):
        assert issubclass(UnknownRequestError, DuplicateRequestError)
        assert issubclass(AlreadyProcessedError, DuplicateRequestError)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Cancellation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCancel:
    def test_cancel_pending(self, registry):
        registry.open("req-1", "market-a")

        assert registry.cancel("req-1") is True
        record = registry.get("req-1")
        assert record.cancelled and record.resolved
        with pytest.raises(AlreadyProcessedError):
            registry.resolve("req-1")

    def test_cancel_resolved_is_noop(self, registry):
        registry.open("req-1", "market-a")
        registry.resolve("req-1")

        assert registry.cancel("req-1") is False
        assert registry.get("req-1").cancelled is False

    def test_cancel_unknown(self, registry):
        assert registry.cancel("nope") is False

    def test_cancel_all(self, registry):
        registry.open("req-1", "a")
        registry.open("req-2", "b")
        registry.open("req-3", "c")
        registry.resolve("req-2")

        assert registry.cancel_all() == 2
        assert registry.pending() == []
