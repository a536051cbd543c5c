"""Tests for marketpilot.observability — tracing setup, invocation spans, metrics."""

import pytest
from opentelemetry import trace

from marketpilot.observability import TICKS_TOTAL, get_metrics, setup_tracing, trace_invocation


@pytest.fixture
def fresh_provider():
    """Allow setup_tracing to install its own provider for one test."""
    trace._TRACER_PROVIDER = None  # type: ignore[attr-defined]
    trace._TRACER_PROVIDER_SET_ONCE._done = False  # type: ignore[attr-defined]
    yield
    trace._TRACER_PROVIDER = None  # type: ignore[attr-defined]
    trace._TRACER_PROVIDER_SET_ONCE._done = False  # type: ignore[attr-defined]


def test_default_service_name(fresh_provider):
    assert setup_tracing() is not None

    resource = trace.get_tracer_provider().resource  # type: ignore[attr-defined]
    assert resource.attributes["service.name"] == "marketpilot"


def test_trace_invocation_reraises():
    with pytest.raises(ValueError):
        with trace_invocation("tick", "agent-1", invocation_id="abc"):
            raise ValueError("boom")


def test_trace_invocation_yields_span():
    with trace_invocation("callback", "agent-1") as span:
        assert span is not None


def test_metrics_exposition():
    TICKS_TOTAL.labels(agent_id="agent-metrics", outcome="no_action").inc()

    assert b'marketpilot_ticks_total{agent_id="agent-metrics"' in get_metrics()
