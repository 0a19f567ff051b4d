"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


stk_push_requests_total = Counter(
    "stk_push_requests_total",
    "STK push initiations by outcome",
    ["service", "outcome"],
)
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Daraja API call latency seconds",
    ["service", "endpoint"],
)
callbacks_received_total = Counter(
    "callbacks_received_total",
    "Provider callbacks reconciled, by mapped transaction status",
    ["service", "status"],
)
business_resolution_total = Counter(
    "business_resolution_total",
    "How the owning business of a callback was resolved",
    ["service", "source"],
)
persistence_failures_total = Counter(
    "persistence_failures_total",
    "Store writes that failed after an irreversible provider event",
    ["service", "stage"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
