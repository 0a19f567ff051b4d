"""Callback reconciliation: business resolution, status mapping, idempotence."""

from decimal import Decimal

import pytest

from stkpay.common.errors import PersistenceError
from stkpay.common.state_machine import TransactionStatus
from stkpay.services.reconciler.service import flatten_metadata

from conftest import CHECKOUT_ID


def seed_pending(store, business_id="taji-ai", account_reference="ORDER-9"):
    store.insert_pending(
        {
            "checkout_request_id": CHECKOUT_ID,
            "merchant_request_id": "29115-34620561-1",
            "business_id": business_id,
            "account_reference": account_reference,
            "phone_number": "254712345678",
            "amount": Decimal("250"),
            "result_code": -1,
            "result_desc": "Success. Request accepted for processing",
            "mpesa_receipt_number": None,
            "transaction_date": None,
        }
    )


def test_account_token_in_metadata_resolves_business(reconciler, store, make_callback):
    ack = reconciler.reconcile(make_callback(account_reference="caan-developers:INV123"))

    assert ack.body() == {"ResultCode": 0, "ResultDesc": "Callback received successfully"}
    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.business_id == "caan-developers"
    assert txn.account_reference == "INV123"
    assert txn.status == "completed"
    assert txn.result_code == 0
    assert txn.mpesa_receipt_number == "NLJ7RT61SV"
    assert txn.transaction_date == "20261019120304"
    assert txn.phone_number == "254712345678"
    assert txn.amount == Decimal("100")
    assert txn.callback_raw["CheckoutRequestID"] == CHECKOUT_ID
    assert "Body" not in txn.callback_raw


def test_pending_row_supplies_business_when_token_is_missing(reconciler, store, make_callback):
    seed_pending(store, business_id="taji-ai")

    reconciler.reconcile(make_callback(result_code=0))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.business_id == "taji-ai"
    assert txn.account_reference == "ORDER-9"
    assert txn.status == "completed"


def test_failed_callback_keeps_initiation_details(reconciler, store, make_callback):
    """Failure callbacks carry no metadata; phone and amount stay as stored."""

    seed_pending(store)

    reconciler.reconcile(make_callback(result_code=1032))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.status == "failed"
    assert txn.result_code == 1032
    assert txn.business_id == "taji-ai"
    assert txn.phone_number == "254712345678"
    assert txn.amount == Decimal("250")
    assert txn.mpesa_receipt_number is None


def test_unresolvable_business_falls_back_to_default(reconciler, store, make_callback):
    reconciler.reconcile(make_callback(result_code=17))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.business_id == "caan-developers"
    assert txn.account_reference == CHECKOUT_ID
    assert txn.status == "cancelled"


def test_undelimited_metadata_reference_uses_pending_business(reconciler, store, make_callback):
    seed_pending(store, business_id="taji-ai")

    reconciler.reconcile(make_callback(account_reference="INV-77"))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.business_id == "taji-ai"
    assert txn.account_reference == "INV-77"


def test_failed_pending_lookup_still_records_callback(reconciler, store, make_callback, monkeypatch):
    def broken_lookup(checkout_request_id):
        raise PersistenceError("lookup timed out")

    monkeypatch.setattr(store, "find_pending", broken_lookup)

    ack = reconciler.reconcile(make_callback(result_code=0))

    assert ack.result_code == 0
    assert store.get_transaction(CHECKOUT_ID).business_id == "caan-developers"


@pytest.mark.parametrize(
    ("code", "status"),
    [
        (0, "completed"),
        (1, "insufficient_funds"),
        (2, "insufficient_amount"),
        (17, "cancelled"),
        (99, "failed"),
        ("17", "cancelled"),
        ("not-a-code", "failed"),
    ],
)
def test_result_codes_map_to_statuses(reconciler, store, make_callback, code, status):
    reconciler.reconcile(make_callback(result_code=code, account_reference="caan-developers:INV123"))

    assert store.get_transaction(CHECKOUT_ID).status == status


def test_receipt_is_only_kept_for_completed_payments(reconciler, store, make_callback):
    reconciler.reconcile(make_callback(result_code=1, account_reference="caan-developers:INV123"))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.mpesa_receipt_number is None
    assert txn.transaction_date is None


def test_duplicate_callback_leaves_one_row(reconciler, store, make_callback, count_transactions):
    payload = make_callback(account_reference="caan-developers:INV123")

    first = reconciler.reconcile(payload)
    second = reconciler.reconcile(payload)

    assert first.result_code == second.result_code == 0
    assert count_transactions() == 1
    assert store.get_transaction(CHECKOUT_ID).status == "completed"


def test_finalized_transaction_is_not_reopened(reconciler, store, make_callback):
    reconciler.reconcile(make_callback(result_code=0, account_reference="caan-developers:INV123"))
    reconciler.reconcile(make_callback(result_code=17, account_reference="caan-developers:INV123"))

    txn = store.get_transaction(CHECKOUT_ID)
    assert txn.status == "completed"
    assert txn.result_code == 0


def test_store_failure_is_still_acknowledged(reconciler, store, make_callback, monkeypatch):
    def broken_finalize(row):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "finalize", broken_finalize)

    ack = reconciler.reconcile(make_callback())

    assert ack.body()["ResultCode"] == 0
    assert "storage failed" in ack.body()["ResultDesc"]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"Body": {}},
        {"Body": {"stkCallback": "oops"}},
        {"Body": {"stkCallback": {"ResultCode": 0}}},
    ],
)
def test_malformed_payloads_are_acknowledged_without_writes(reconciler, count_transactions, payload):
    ack = reconciler.reconcile(payload)

    assert ack.body()["ResultCode"] == 0
    assert count_transactions() == 0


def test_unexpected_errors_are_acknowledged(reconciler, monkeypatch, make_callback):
    def explode(*args, **kwargs):
        raise RuntimeError("bug")

    monkeypatch.setattr(reconciler, "compose_record", explode)

    assert reconciler.reconcile(make_callback()).body() == {"ResultCode": 0, "ResultDesc": "Callback received"}


def test_numeric_checkout_id_is_stored_as_text(reconciler, store, make_callback):
    reconciler.reconcile(make_callback(checkout_request_id=987654, account_reference="caan-developers:INV1"))

    txn = store.get_transaction("987654")
    assert txn is not None
    assert txn.status == "completed"


def test_compose_record_keys_row_by_validated_checkout_id(reconciler, make_callback):
    stk = make_callback()["Body"]["stkCallback"]
    account = reconciler.resolve_account(CHECKOUT_ID, {})

    row = reconciler.compose_record("ws_CO_other", stk, {}, account, 0, TransactionStatus.COMPLETED)

    assert row["checkout_request_id"] == "ws_CO_other"
    assert row["callback_raw"] is stk


def test_metadata_flattening_tolerates_odd_items():
    stk = {
        "CallbackMetadata": {
            "Item": [
                {"Name": "Amount", "Value": 1.0},
                {"Name": "Balance"},
                {"Value": "nameless"},
                "junk",
            ]
        }
    }
    assert flatten_metadata(stk) == {"Amount": 1.0, "Balance": None}
    assert flatten_metadata({}) == {}
    assert flatten_metadata({"CallbackMetadata": {"Item": None}}) == {}
