"""HTTP surface for STK push initiation and transaction status reads."""

from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stkpay.common.config import PaymentConfig, settings
from stkpay.common.db import SessionLocal
from stkpay.common.errors import ConfigError, PersistenceError, ProviderError, ValidationError
from stkpay.common.http import install_http_handlers
from stkpay.common.logging import configure_logging, logger, trace_id_ctx
from stkpay.common.metrics import metrics_response, stk_push_requests_total
from stkpay.common.startup import INITIATOR_STARTUP_KEYS, log_startup_config
from stkpay.common.store import TransactionStore
from stkpay.common.tracing import instrument_app, setup_tracing
from stkpay.services.initiator.schemas import StkPushRequest, TransactionResponse
from stkpay.services.initiator.service import Initiator

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name, INITIATOR_STARTUP_KEYS)
store = TransactionStore(SessionLocal)
initiator = Initiator(store, PaymentConfig.from_settings(settings))

app = FastAPI(title="STK Push Initiator")
install_http_handlers(app)
instrument_app(app)


def get_initiator() -> Initiator:
    return initiator


def get_store() -> TransactionStore:
    return store


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Unparseable bodies are bad input like any other: 400, not 422."""

    del request
    logger.warning("invalid_request_body errors=%s", exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.post("/stk/push")
async def stk_push(
    req: StkPushRequest,
    initiator: Initiator = Depends(get_initiator),
    x_trace_id: str | None = Header(default=None),
):
    """Send a payment prompt to the customer's phone.

    Success means the provider accepted the push, not that the customer paid;
    the outcome arrives later through the reconciler.
    """

    trace_id_ctx.set(x_trace_id or str(uuid4()))
    try:
        result = await initiator.initiate(req)
    except ValidationError as exc:
        stk_push_requests_total.labels(service=initiator.service_name, outcome="invalid").inc()
        logger.info("stk_push_invalid field=%s error=%s", exc.field, exc.message)
        return JSONResponse({"error": exc.message, "field": exc.field}, status_code=400)
    except ConfigError as exc:
        logger.error("stk_push_misconfigured missing=%s", exc.missing)
        return JSONResponse(
            {"error": "Server configuration error", "details": exc.message},
            status_code=500,
        )
    except ProviderError as exc:
        return JSONResponse(
            {
                "success": False,
                "error": "STK push failed",
                "message": exc.message,
                "checkoutRequestID": exc.checkout_request_id,
            },
            status_code=exc.status_code,
        )
    except Exception as exc:
        logger.exception("stk_push_internal_error")
        return JSONResponse({"error": "Internal server error", "details": str(exc)}, status_code=500)
    return result.model_dump(by_alias=True)


@app.get("/transactions/{checkout_request_id}", response_model=TransactionResponse)
def get_transaction(checkout_request_id: str, store: TransactionStore = Depends(get_store)):
    """Fetch the current record for one push."""

    try:
        txn = store.get_transaction(checkout_request_id)
    except PersistenceError as exc:
        logger.error("transaction_lookup_failed error=%s", exc.message)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    if txn is None:
        return JSONResponse({"error": "transaction not found"}, status_code=404)
    return TransactionResponse.model_validate(txn)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
