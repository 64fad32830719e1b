"""
Search Tracer

get_tracer() hands the search service something to open spans on. With
tracing disabled, or before init_tracing() has installed an SDK provider,
that is a NoOpTracer; otherwise spans go to OpenTelemetry.

Spans expose the handful of calls a search makes:
- set_attributes() for the request/result attribute dicts
- succeed() / fail() to close out the status

OpenTelemetry's own exception recording is switched off, so a failed
search is recorded once, by fail().
"""

from __future__ import annotations

from contextlib import AbstractContextManager, contextmanager
from typing import Any, Iterator, Mapping, Protocol

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import StatusCode


class TracerProtocol(Protocol):
    def start_span(
        self, name: str, attributes: Mapping[str, Any] | None = None
    ) -> AbstractContextManager[Any]:
        ...


# ---------------------------------------------------------------------------
# NOOP
# ---------------------------------------------------------------------------


class NoOpSpan:
    """Accepts every span call and records nothing."""

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        pass

    def succeed(self) -> None:
        pass

    def fail(self, error: BaseException) -> None:
        pass


class NoOpTracer:
    @contextmanager
    def start_span(self, name: str, attributes: Mapping[str, Any] | None = None) -> Iterator[NoOpSpan]:
        yield NoOpSpan()


# ---------------------------------------------------------------------------
# OPENTELEMETRY
# ---------------------------------------------------------------------------


class OTelSpan:
    def __init__(self, span: Any):
        self._span = span

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        self._span.set_attributes(dict(attributes))

    def succeed(self) -> None:
        self._span.set_status(StatusCode.OK)

    def fail(self, error: BaseException) -> None:
        self._span.record_exception(error)
        self._span.set_status(StatusCode.ERROR, f"{type(error).__name__}: {error}")


class OTelTracer:
    def __init__(self, tracer: Any):
        self._tracer = tracer

    @contextmanager
    def start_span(self, name: str, attributes: Mapping[str, Any] | None = None) -> Iterator[OTelSpan]:
        with self._tracer.start_as_current_span(
            name,
            attributes=dict(attributes) if attributes else None,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            yield OTelSpan(span)


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def get_tracer(service_name: str | None = None) -> TracerProtocol:
    """
    Get the shared tracer.

    service_name defaults to RAGSTORE_SERVICE_NAME. A NoOpTracer handed out
    while tracing is enabled but no SDK provider exists yet is not cached,
    so the first call after init_tracing() picks up the real provider.
    """
    global _tracer
    if _tracer is not None:
        return _tracer

    from ragstore.observability.config import get_config

    config = get_config()
    if not config.enabled:
        _tracer = NoOpTracer()
        return _tracer

    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        return NoOpTracer()

    _tracer = OTelTracer(trace.get_tracer(service_name or config.service_name))
    return _tracer


def reset_tracer() -> None:
    global _tracer
    _tracer = None
