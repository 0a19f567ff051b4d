"""HTTP surface receiving Daraja STK callbacks."""

import json
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from starlette.concurrency import run_in_threadpool

from stkpay.common.config import PaymentConfig, settings
from stkpay.common.db import SessionLocal
from stkpay.common.http import install_http_handlers
from stkpay.common.logging import configure_logging, logger, trace_id_ctx
from stkpay.common.metrics import metrics_response
from stkpay.common.startup import RECONCILER_STARTUP_KEYS, log_startup_config
from stkpay.common.store import TransactionStore
from stkpay.common.tracing import instrument_app, setup_tracing
from stkpay.services.reconciler.service import Reconciler

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name, RECONCILER_STARTUP_KEYS)
reconciler = Reconciler(TransactionStore(SessionLocal), PaymentConfig.from_settings(settings))

app = FastAPI(title="STK Callback Reconciler")
install_http_handlers(app)
instrument_app(app)


def get_reconciler() -> Reconciler:
    return reconciler


@app.post("/stk/callback")
async def stk_callback(request: Request, reconciler: Reconciler = Depends(get_reconciler)):
    """Record the outcome of a push. Always answers 200 `{ResultCode: 0}`."""

    trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.error("callback_body_not_json size=%s", len(raw))
        payload = None
    ack = await run_in_threadpool(reconciler.reconcile, payload)
    return ack.body()


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
