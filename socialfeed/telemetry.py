"""
Metrics and tracing for the data-access core.

Prometheus series live at module level and are registered on import.
Spans go to an OTLP collector (Jaeger in the dev stack) once the embedding
process calls setup_tracing(); until then the OTel API hands out no-op
tracers, so services and tests can trace unconditionally.
"""
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from socialfeed.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# ── Metrics ────────────────────────────────────────────────────────────────
FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "Latency of a user feed query",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

CACHE_REQUESTS_TOTAL = Counter(
    "cache_requests_total",
    "Cache lookups by entity and outcome",
    ["entity", "result"],  # hit | miss | error
)

DIRTY_WRITES_TOTAL = Counter(
    "dirty_writes_total",
    "Post updates rejected by the version check",
)

BATCH_FAILURES_TOTAL = Counter(
    "batch_insert_failures_total",
    "Rows that failed to insert during a batch",
    ["entity"],
)


# ── Tracing ────────────────────────────────────────────────────────────────
def _span_processor(cfg: Settings):
    try:
        exporter = OTLPSpanExporter(endpoint=cfg.otel_exporter_otlp_endpoint, insecure=True)
    except Exception as exc:
        logger.warning("OTLP exporter unavailable (%s); spans will not be exported", exc)
        return None
    return BatchSpanProcessor(exporter)


def setup_tracing(cfg: Settings = default_settings) -> TracerProvider:
    """Install a global TracerProvider and instrument the Redis and SQLAlchemy clients."""
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": cfg.service_name,
                "deployment.environment": cfg.environment,
            }
        )
    )
    processor = _span_processor(cfg)
    if processor is not None:
        provider.add_span_processor(processor)
        logger.info("Exporting spans to %s", cfg.otel_exporter_otlp_endpoint)
    trace.set_tracer_provider(provider)

    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()
    return provider
