"""Structured JSON logging with request/callback correlation fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from stkpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
checkout_request_id_ctx: ContextVar[str] = ContextVar("checkout_request_id", default="")
business_id_ctx: ContextVar[str] = ContextVar("business_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.checkout_request_id = checkout_request_id_ctx.get()
        record.business_id = business_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure root logger once per service process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s "
        "%(checkout_request_id)s %(business_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("stkpay")
