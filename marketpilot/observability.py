"""
Observability — OpenTelemetry tracing + Prometheus metrics for agents.

Provides:
- Tracer setup (OTLP exporter when configured, console otherwise)
- ``trace_invocation()``: one span per tick or callback
- Agent counters: ticks, inference requests, positions, claims
- Prometheus exposition (``get_metrics``)
"""

import time
from contextlib import contextmanager
from typing import Generator

import structlog
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import Counter, Histogram, generate_latest

logger = structlog.get_logger(__name__)

# ── OpenTelemetry Setup ──────────────────────────────────────────────


def setup_tracing(
    service_name: str | None = None,
    otlp_endpoint: str | None = None,
) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service (appears in traces). Defaults to APP_NAME.
        otlp_endpoint: OTLP collector endpoint. Console exporter when omitted.
    """
    from marketpilot.version import APP_NAME, VERSION

    service_name = service_name or APP_NAME.lower()
    resource = Resource.create({"service.name": service_name, "service.version": VERSION})
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        logger.info("otel_otlp_configured", endpoint=otlp_endpoint)
    else:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    logger.info("otel_tracing_initialized", service=service_name)
    return trace.get_tracer(__name__)


@contextmanager
def trace_invocation(kind: str, agent_id: str, **attributes) -> Generator:
    """
    Trace one agent invocation (``kind`` is ``"tick"`` or ``"callback"``).

    Usage:
        with trace_invocation("tick", agent_id, invocation_id=ctx.invocation_id):
            ...
    """
    tracer = trace.get_tracer("marketpilot.agent")
    with tracer.start_as_current_span(
        f"agent.{kind}",
        attributes={
            "agent.id": agent_id,
            **{k: str(v) for k, v in attributes.items()},
        },
    ) as span:
        start = time.monotonic()
        try:
            yield span
        except Exception as e:
            span.set_attribute("agent.status", "error")
            span.record_exception(e)
            raise
        finally:
            elapsed = time.monotonic() - start
            span.set_attribute("agent.latency_ms", round(elapsed * 1000))
            INVOCATION_LATENCY.labels(kind=kind).observe(elapsed)


# ── Agent Metrics ────────────────────────────────────────────────────

TICKS_TOTAL = Counter(
    "ticks_total",
    "Executions of the agent entry point by outcome",
    ["agent_id", "outcome"],
    namespace="marketpilot",
)

INFERENCE_REQUESTS_TOTAL = Counter(
    "inference_requests_total",
    "Inference requests by outcome",
    ["agent_id", "outcome"],
    namespace="marketpilot",
)

ANSWERS_TOTAL = Counter(
    "answers_total",
    "Delivered answers by outcome",
    ["agent_id", "outcome"],
    namespace="marketpilot",
)

POSITIONS_OPENED_TOTAL = Counter(
    "positions_opened_total",
    "Positions opened on the ledger",
    ["agent_id"],
    namespace="marketpilot",
)

CLAIMS_TOTAL = Counter(
    "claims_total",
    "Winnings claims by outcome",
    ["agent_id", "outcome"],
    namespace="marketpilot",
)

INVOCATION_LATENCY = Histogram(
    "invocation_latency_seconds",
    "Latency of ticks and callbacks",
    ["kind"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 2, 5],
    namespace="marketpilot",
)


# ── Prometheus Scraping ──────────────────────────────────────────────


def get_metrics() -> bytes:
    """Generate Prometheus metrics for scraping."""
    return generate_latest()
