"""OpenTelemetry tracing for the lookup pipeline.

Every hop of a lookup gets its own span through ``trace_operation``: the WSAA
login, the Padron A5 ``getPersona`` call, the delegated REST proxy and each
enrichment attempt. Gateway errors leave their code, HTTP-equivalent status and
retryability on the span, so a trace shows why an attempt was retried. The
FastAPI surface is instrumented by ``instrument_app``.

Exporters (``OBSERVABILITY_CONFIG__EXPORTER_TYPE``):
- **console**: finished spans are logged through Loguru at DEBUG
- **otlp**: any OTLP collector (Jaeger, Tempo, X-Ray via ADOT)
- **none**: spans are sampled and propagated but not exported
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from src.core.context import RequestContext
from src.core.exceptions import PadronGatewayError

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from src.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"
AFIP_ENVIRONMENT_KEY: Final[str] = "afip.environment"
LOOKUP_PROVIDER_KEY: Final[str] = "padron.lookup_provider"

DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
EXCLUDED_URLS: Final[str] = "/health,/info,/docs,/openapi.json"

# Span attributes copied onto the log line of a finished span
LOGGED_SPAN_ATTRIBUTES: Final[tuple[str, ...]] = (
    "correlation_id",
    "cuit",
    "attempt",
    "provider",
    "gateway.error_code",
)


class LoguruSpanExporter(SpanExporter):
    """Logs finished spans at DEBUG instead of shipping them anywhere."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            span_context = span.get_span_context()
            if not span_context:
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                trace_id=f"{span_context.trace_id:032x}",
                span_id=f"{span_context.span_id:016x}",
                duration_ms=duration_ms,
                status=span.status.status_code.name,
                **{
                    key.replace(".", "_"): attributes[key]
                    for key in LOGGED_SPAN_ATTRIBUTES
                    if key in attributes
                },
            ).debug("Span {} finished", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Build the exporter selected by ``exporter_type``; None disables export."""
    config = settings.observability_config

    if config.exporter_type == "console":
        logger.info("Logging trace spans through Loguru")
        return LoguruSpanExporter()

    if config.exporter_type == "otlp":
        endpoint = config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
        logger.info("Exporting trace spans over OTLP", endpoint=endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Trace span export disabled")
    return None


@lru_cache(maxsize=8)
def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for ``name`` (usually ``__name__``)."""
    return trace.get_tracer(name)


def build_resource(settings: Settings) -> Resource:
    """Resource attributes identifying this gateway instance.

    Besides the service identity, spans carry the AFIP environment and the
    active lookup provider so traces from homologacion and production, or
    from fixture-backed deployments, are never confused.
    """
    return Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
            AFIP_ENVIRONMENT_KEY: settings.afip.environment,
            LOOKUP_PROVIDER_KEY: settings.enrichment.provider.value,
        }
    )


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider.

    Sampling follows the parent decision when there is one (a caller's
    ``traceparent``), and ``trace_sample_rate`` for new traces.
    """
    config = settings.observability_config
    if not config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    tracer_provider = TracerProvider(
        resource=build_resource(settings),
        sampler=ParentBased(TraceIdRatioBased(config.trace_sample_rate)),
    )

    exporter = get_span_exporter(settings)
    if exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)

    logger.info(
        "Tracing configured",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument the FastAPI application; monitoring routes are not traced."""
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=EXCLUDED_URLS,
        server_request_hook=add_correlation_id_to_span,
    )

    logger.info("Application instrumented for tracing")


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Copy the request's correlation ID onto the server span."""
    _ = scope
    if span and span.is_recording():
        if correlation_id := RequestContext.get_correlation_id():
            span.set_attribute("correlation_id", correlation_id)


def record_gateway_error(span: trace.Span, error: PadronGatewayError) -> None:
    """Tag ``span`` with the error code, status and retryability of ``error``."""
    span.set_attribute("gateway.error_code", error.error_code)
    span.set_attribute("gateway.status_code", error.status_code)
    span.set_attribute("gateway.retryable", error.retryable)


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Run the block inside a new span named ``name``.

    Attributes are stored as strings. Exceptions are recorded on the span and
    re-raised; gateway errors are also tagged by ``record_gateway_error``.

    Example:
        >>> with trace_operation("afip.wsaa.login_cms", service="ws_sr_padron_a5"):
        >>>     response = await client.post(url, content=envelope)
    """
    span = get_tracer(__name__).start_span(name)

    for key, value in attributes.items():
        span.set_attribute(key, str(value))

    if correlation_id := RequestContext.get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    with trace.use_span(span, end_on_exit=True):
        try:
            yield span
        except PadronGatewayError as e:
            record_gateway_error(span, e)
            raise
