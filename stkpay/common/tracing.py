"""OpenTelemetry setup helpers used by each FastAPI service."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from stkpay.common.config import settings


SERVICE_NAMESPACE = "stkpay"
EXCLUDED_URLS = "health,metrics"


def setup_tracing(service_name: str) -> None:
    """Register a tracer provider exporting over OTLP HTTP, unless disabled."""

    if not settings.otel_enabled:
        return
    resource = Resource.create({"service.name": service_name, "service.namespace": SERVICE_NAMESPACE})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    """Attach FastAPI auto-instrumentation, skipping health and scrape requests."""

    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def tag_payment_span(
    *,
    checkout_request_id: str | None = None,
    business_id: str | None = None,
    status: str | None = None,
) -> None:
    """Copy payment correlation ids onto the active span; empty values are skipped."""

    span = trace.get_current_span()
    attributes = {
        "mpesa.checkout_request_id": checkout_request_id,
        "stkpay.business_id": business_id,
        "stkpay.transaction_status": status,
    }
    for key, value in attributes.items():
        if value:
            span.set_attribute(key, value)


tracer = trace.get_tracer("stkpay")
