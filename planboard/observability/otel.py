"""OpenTelemetry + Prometheus fallback wiring for the planboard backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from planboard import config

logger = logging.getLogger("planboard.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_mutation_counter: Any | None = None
_persist_failure_counter: Any | None = None
_broadcast_counter: Any | None = None

_prom_enabled = False
_prom_mutation_counter: Any | None = None
_prom_persist_failure_counter: Any | None = None
_prom_broadcast_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str | None) -> str:
    return (value or "").strip() or "unknown"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _mutation_counter, _persist_failure_counter, _broadcast_counter
    global _prom_enabled, _prom_mutation_counter, _prom_persist_failure_counter, _prom_broadcast_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (PLANBOARD_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "planboard-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "planboard",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("planboard.backend")

    _mutation_counter = meter.create_counter(
        "planboard_mutations_total",
        unit="1",
        description="Board mutations by kind and outcome",
    )
    _persist_failure_counter = meter.create_counter(
        "planboard_persist_failures_total",
        unit="1",
        description="Failed session snapshot writes",
    )
    _broadcast_counter = meter.create_counter(
        "planboard_broadcast_deliveries_total",
        unit="1",
        description="Realtime event deliveries by event and result",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("planboard.backend")
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_mutation_counter = Counter(
                "planboard_mutations_total",
                "Board mutations by kind and outcome",
                ["kind", "result"],
            )
            _prom_persist_failure_counter = Counter(
                "planboard_persist_failures_total",
                "Failed session snapshot writes",
            )
            _prom_broadcast_counter = Counter(
                "planboard_broadcast_deliveries_total",
                "Realtime event deliveries by event and result",
                ["event", "result"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        logger.debug("FastAPI uninstrumentation failed", exc_info=True)
    for provider in (_meter_provider, _trace_provider):
        try:
            if provider is not None:
                provider.shutdown()
        except Exception:
            logger.debug("Telemetry provider shutdown failed", exc_info=True)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_mutation(kind: str, result: str) -> None:
    labels = {"kind": _label(kind), "result": _label(result)}
    if _enabled and _mutation_counter is not None:
        _mutation_counter.add(1, labels)
    if _prom_enabled and _prom_mutation_counter is not None:
        _prom_mutation_counter.labels(**labels).inc()


def record_persist_failure() -> None:
    if _enabled and _persist_failure_counter is not None:
        _persist_failure_counter.add(1)
    if _prom_enabled and _prom_persist_failure_counter is not None:
        _prom_persist_failure_counter.inc()


def record_broadcast(event: str, delivered: int, dropped: int = 0) -> None:
    for result, count in (("delivered", delivered), ("dropped", dropped)):
        safe_count = max(0, int(count))
        if safe_count == 0:
            continue
        labels = {"event": _label(event), "result": result}
        if _enabled and _broadcast_counter is not None:
            _broadcast_counter.add(safe_count, labels)
        if _prom_enabled and _prom_broadcast_counter is not None:
            _prom_broadcast_counter.labels(**labels).inc(safe_count)
