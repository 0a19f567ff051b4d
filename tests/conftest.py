"""Shared fixtures: in-memory store, seeded businesses, fake Daraja API."""

import json
import os

# Settings are read at import time; point them at throwaway resources first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OTEL_ENABLED"] = "false"
os.environ.setdefault("SERVICE_NAME", "stkpay-tests")

import httpx
import pytest
from sqlalchemy import func, select

from stkpay.common.config import PaymentConfig
from stkpay.common.db import Base, build_engine, build_session_factory
from stkpay.common.models import Business, Transaction
from stkpay.common.store import TransactionStore
from stkpay.services.initiator.daraja import STK_PUSH_PATH, TOKEN_PATH
from stkpay.services.initiator.service import Initiator
from stkpay.services.reconciler.service import Reconciler


CHECKOUT_ID = "ws_CO_19102026120000001"
MERCHANT_ID = "29115-34620561-1"


class FakeDaraja:
    """Scriptable stand-in for the Daraja OAuth and STK push endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict = {"access_token": "test-token", "expires_in": "3599"}
        self.push_status = 200
        self.push_body: dict = {
            "MerchantRequestID": MERCHANT_ID,
            "CheckoutRequestID": CHECKOUT_ID,
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        }
        self.push_exception: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == TOKEN_PATH:
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path == STK_PUSH_PATH:
            if self.push_exception is not None:
                raise self.push_exception
            return httpx.Response(self.push_status, json=self.push_body)
        return httpx.Response(404, json={"errorMessage": "unknown path"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def push_payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == STK_PUSH_PATH]


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)
    with factory() as db:
        db.add_all(
            [
                Business(business_id="caan-developers", name="CAAN Developers", status="active"),
                Business(business_id="taji-ai", name="Taji AI", status="ACTIVE"),
                Business(business_id="dormant-co", name="Dormant Co", status="inactive"),
            ]
        )
        db.commit()
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory) -> TransactionStore:
    return TransactionStore(session_factory)


@pytest.fixture
def payment_config() -> PaymentConfig:
    return PaymentConfig(
        base_url="https://daraja.test",
        consumer_key="consumer-key",
        consumer_secret="consumer-secret",
        business_short_code="174379",
        passkey="test-passkey",
        callback_url="https://example.com/stk/callback",
        default_business_id="caan-developers",
    )


@pytest.fixture
def daraja() -> FakeDaraja:
    return FakeDaraja()


@pytest.fixture
def initiator(store, payment_config, daraja) -> Initiator:
    return Initiator(store, payment_config, transport=daraja.transport)


@pytest.fixture
def reconciler(store, payment_config) -> Reconciler:
    return Reconciler(store, payment_config)


@pytest.fixture
def count_transactions(session_factory):
    def _count() -> int:
        with session_factory() as db:
            return db.execute(select(func.count()).select_from(Transaction)).scalar_one()

    return _count


@pytest.fixture
def make_callback():
    """Factory for Daraja `stkCallback` envelopes."""

    def _make(
        result_code=0,
        checkout_request_id: str = CHECKOUT_ID,
        account_reference: str | None = None,
        amount=100,
        phone=254712345678,
        with_metadata: bool | None = None,
    ) -> dict:
        stk = {
            "MerchantRequestID": MERCHANT_ID,
            "CheckoutRequestID": checkout_request_id,
            "ResultCode": result_code,
            "ResultDesc": "The service request is processed successfully."
            if result_code == 0
            else "Request cancelled by user",
        }
        if with_metadata is None:
            with_metadata = result_code == 0 or account_reference is not None
        if with_metadata:
            items = [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                {"Name": "Balance"},
                {"Name": "TransactionDate", "Value": 20261019120304},
                {"Name": "PhoneNumber", "Value": phone},
            ]
            if account_reference is not None:
                items.append({"Name": "AccountReference", "Value": account_reference})
            stk["CallbackMetadata"] = {"Item": items}
        return {"Body": {"stkCallback": stk}}

    return _make
