from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from .config import Settings

logger = logging.getLogger(__name__)

_OTEL_READY = False
_OTEL_SETUP_ATTEMPTED = False
_OTEL_CONFIGURED = False
_TRACER: Any = None
_HTTP_COUNTER: Any = None
_HTTP_LATENCY_MS: Any = None
_SIDE_EFFECT_LATENCY_MS: Any = None
_GOVERNANCE_COUNTER: Any = None


def otel_enabled() -> bool:
    return _OTEL_READY


def setup_otel(app: Any, settings: Settings) -> bool:
    """Configure FastAPI tracing when OTEL is enabled.

    Design goals:
    - near-zero overhead when OTEL is disabled
    - no hard dependency on otel packages for local development
    - OTLP export when an endpoint is configured, local-only spans otherwise
    """

    global _OTEL_READY, _OTEL_SETUP_ATTEMPTED, _OTEL_CONFIGURED, _TRACER
    global _HTTP_COUNTER, _HTTP_LATENCY_MS, _SIDE_EFFECT_LATENCY_MS, _GOVERNANCE_COUNTER
    # Providers are process-global; the most recently built app decides whether
    # spans and metrics are recorded.
    if not settings.otel_enabled:
        _OTEL_READY = False
        return False

    try:
        from opentelemetry import metrics as otel_metrics  # type: ignore[import-not-found]
        from opentelemetry import trace
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor  # type: ignore[import-not-found]
        from opentelemetry.sdk.metrics import MeterProvider  # type: ignore[import-not-found]
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader  # type: ignore[import-not-found]
        from opentelemetry.sdk.resources import Resource  # type: ignore[import-not-found]
        from opentelemetry.sdk.trace import TracerProvider  # type: ignore[import-not-found]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor  # type: ignore[import-not-found]
    except Exception as e:  # pragma: no cover
        logger.warning("OTEL enabled but dependencies missing; tracing disabled. error=%s", e)
        return False

    # Only the app instrumentation repeats per app.
    if _OTEL_SETUP_ATTEMPTED:
        if _OTEL_CONFIGURED:
            FastAPIInstrumentor.instrument_app(app, tracer_provider=trace.get_tracer_provider())
        _OTEL_READY = _OTEL_CONFIGURED
        return _OTEL_READY
    _OTEL_SETUP_ATTEMPTED = True

    resource = Resource.create({"service.name": settings.otel_service_name})
    provider = TracerProvider(resource=resource)

    endpoint = settings.otel_exporter_otlp_endpoint
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[import-not-found]
                OTLPSpanExporter,
            )

            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        except Exception as e:  # pragma: no cover
            logger.warning("OTEL OTLP trace exporter init failed; spans will stay local. error=%s", e)
    else:
        logger.info("OTEL tracing enabled without exporter; spans will stay local to process")

    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    _TRACER = trace.get_tracer("formgate")

    # Metrics are best-effort; tracing should still work if metric setup fails.
    try:
        metric_readers: list[Any] = []
        if endpoint:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import (  # type: ignore[import-not-found]
                OTLPMetricExporter,
            )

            metric_readers.append(PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=endpoint)))
        meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
        otel_metrics.set_meter_provider(meter_provider)
        meter = otel_metrics.get_meter("formgate")
        _HTTP_COUNTER = meter.create_counter(
            name="formgate.http.server.requests",
            unit="1",
            description="HTTP requests handled by the API",
        )
        _HTTP_LATENCY_MS = meter.create_histogram(
            name="formgate.http.server.duration_ms",
            unit="ms",
            description="HTTP request latency in milliseconds",
        )
        _SIDE_EFFECT_LATENCY_MS = meter.create_histogram(
            name="formgate.side_effect.duration_ms",
            unit="ms",
            description="Mail delivery / chat completion latency in milliseconds",
        )
        _GOVERNANCE_COUNTER = meter.create_counter(
            name="formgate.governance.decisions",
            unit="1",
            description="Rate-limit and deduplication decisions",
        )
    except Exception as e:  # pragma: no cover
        logger.warning("OTEL metric setup failed; continuing with tracing only. error=%s", e)

    _OTEL_CONFIGURED = True
    _OTEL_READY = True
    return True


@contextmanager
def span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    """Start a tracing span when OTEL is active; otherwise no-op."""

    if not _OTEL_READY or _TRACER is None:
        yield None
        return

    with _TRACER.start_as_current_span(name) as s:
        for k, v in _attrs(attributes).items():
            s.set_attribute(k, v)
        yield s


def _attrs(attrs: dict[str, Any] | None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if not attrs:
        return out
    for k, v in attrs.items():
        if v is None:
            continue
        out[str(k)] = v if isinstance(v, (str, bool, int, float)) else str(v)
    return out


def record_http_request_metric(*, method: str, path: str, status_code: int, latency_ms: float) -> None:
    if not _OTEL_READY:
        return
    attrs = _attrs({"http.method": method, "http.route": path, "http.status_code": int(status_code)})
    if _HTTP_COUNTER is not None:
        _HTTP_COUNTER.add(1, attributes=attrs)
    if _HTTP_LATENCY_MS is not None:
        _HTTP_LATENCY_MS.record(float(latency_ms), attributes=attrs)


def record_side_effect_metric(*, operation: str, latency_ms: float, outcome: str) -> None:
    if not _OTEL_READY or _SIDE_EFFECT_LATENCY_MS is None:
        return
    _SIDE_EFFECT_LATENCY_MS.record(
        float(latency_ms),
        attributes=_attrs({"side_effect.operation": operation, "side_effect.outcome": outcome}),
    )


def record_governance_decision(*, kind: str, outcome: str, policy: str | None = None) -> None:
    if not _OTEL_READY or _GOVERNANCE_COUNTER is None:
        return
    _GOVERNANCE_COUNTER.add(
        1,
        attributes=_attrs({"governance.kind": kind, "governance.outcome": outcome, "governance.policy": policy}),
    )
