"""
Observability Module - OpenTelemetry tracing for searches

USAGE:
------
# At application startup:
from ragstore.observability import init_tracing

init_tracing()  # Installs an SDK provider if RAGSTORE_TRACING_ENABLED=true

# In code that needs tracing:
from ragstore.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("ragstore.similarity_search", attributes={"db.operation.name": "similarity_search"}) as span:
    ...
    span.set_attributes({"ragstore.search.result_count": 0})
    span.succeed()
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from ragstore.observability.attributes import (
    SEARCH_CANDIDATE_COUNT,
    SEARCH_FILTER,
    SEARCH_RESULT_COUNT,
    SEARCH_SIMILARITY_THRESHOLD,
    SEARCH_TOP_K,
    search_request_attributes,
    search_result_attributes,
)
from ragstore.observability.config import (
    TracingConfig,
    get_config,
    reset_config,
)
from ragstore.observability.tracer import (
    NoOpSpan,
    NoOpTracer,
    TracerProtocol,
    get_tracer,
    reset_tracer,
)

logger = logging.getLogger(__name__)

_provider: TracerProvider | None = None


def init_tracing(config: TracingConfig | None = None) -> bool:
    """
    Initialize OpenTelemetry tracing.

    This should be called once at application startup.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if tracing was initialized, False if disabled
    """
    global _provider
    if _provider is not None:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Tracing disabled")
        return False

    if config.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint)
        logger.info(f"Exporting traces to: {config.otlp_endpoint}")
    else:
        exporter = ConsoleSpanExporter()
        logger.info("Exporting traces to console")

    provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    _provider = provider
    reset_tracer()
    return True


def shutdown_tracing() -> None:
    """Flush pending spans and reset tracing state."""
    global _provider

    if _provider is None:
        return

    try:
        _provider.shutdown()
    except Exception as e:
        logger.warning(f"Error shutting down tracing: {e}")

    reset_tracer()
    reset_config()
    _provider = None


__all__ = [
    # Initialization
    "init_tracing",
    "shutdown_tracing",
    # Config
    "TracingConfig",
    "get_config",
    "reset_config",
    # Tracer
    "TracerProtocol",
    "NoOpTracer",
    "NoOpSpan",
    "get_tracer",
    "reset_tracer",
    # Attributes
    "SEARCH_TOP_K",
    "SEARCH_SIMILARITY_THRESHOLD",
    "SEARCH_FILTER",
    "SEARCH_CANDIDATE_COUNT",
    "SEARCH_RESULT_COUNT",
    # Helpers
    "search_request_attributes",
    "search_result_attributes",
]
