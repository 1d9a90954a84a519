"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: feed latency, cache hit ratio, cache faults,
    invalidations

Metrics are module-level so every assembler and hook shares one registry.
Tracing is configured once at startup when ``tracing_enabled`` is set;
until then ``trace.get_tracer`` hands out no-op tracers.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from feedrank.config import Settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
FEED_REQUESTS_TOTAL = Counter(
    "feed_requests_total",
    "Feed pages served",
    ["feed_type", "cached"],
)

FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "End-to-end latency of feed assembly (cache hits included)",
    ["feed_type"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

FEED_CANDIDATES_TOTAL = Counter(
    "feed_candidates_total",
    "Candidate posts fetched from storage",
    ["feed_type"],
)

CACHE_FAULTS_TOTAL = Counter(
    "feed_cache_faults_total",
    "Cache operations that failed and were downgraded to a miss / no-op",
    ["operation"],
)

CACHE_INVALIDATIONS_TOTAL = Counter(
    "feed_cache_invalidations_total",
    "Cache keys removed by mutation-side invalidation",
    ["event"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(settings: Settings) -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.redis import RedisInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info("OTel tracing configured -> %s", settings.otel_exporter_otlp_endpoint)
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s (traces disabled)", exc)

    trace.set_tracer_provider(provider)

    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)
