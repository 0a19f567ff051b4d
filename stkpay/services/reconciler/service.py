"""Daraja STK callback reconciliation.

Every callback is acknowledged with `ResultCode: 0`, whatever happens inside.
Internal failures are logged and counted, never reported to the provider.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from stkpay.common.account_token import AccountToken
from stkpay.common.config import PaymentConfig
from stkpay.common.errors import PersistenceError
from stkpay.common.logging import business_id_ctx, checkout_request_id_ctx, logger
from stkpay.common.metrics import (
    business_resolution_total,
    callbacks_received_total,
    persistence_failures_total,
)
from stkpay.common.state_machine import TransactionStatus, parse_result_code, status_for_result_code
from stkpay.common.store import TransactionStore
from stkpay.common.tracing import tag_payment_span, tracer
from stkpay.services.reconciler.schemas import CallbackAck


ACCOUNT_REFERENCE_KEYS = ("AccountReference", "account_reference")


@dataclass(frozen=True)
class ResolvedAccount:
    business_id: str
    account_reference: str
    source: str  # token | pending_lookup | default


def extract_stk_callback(payload: Any) -> dict | None:
    """Return `Body.stkCallback`, or None when the envelope is malformed."""

    if not isinstance(payload, dict):
        return None
    body = payload.get("Body")
    if not isinstance(body, dict):
        return None
    stk = body.get("stkCallback")
    return stk if isinstance(stk, dict) else None


def flatten_metadata(stk: dict) -> dict[str, Any]:
    """`CallbackMetadata.Item` name/value pairs as a dict; empty when absent.

    Only successful payments carry metadata. Items without a `Value` (Daraja
    sends a bare `Balance`) map to None.
    """

    metadata = stk.get("CallbackMetadata")
    items = metadata.get("Item") if isinstance(metadata, dict) else None
    if not isinstance(items, list):
        return {}
    flat: dict[str, Any] = {}
    for item in items:
        if isinstance(item, dict) and item.get("Name"):
            flat[str(item["Name"])] = item.get("Value")
    return flat


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _optional_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning("callback_amount_unparseable value=%s", value)
        return None
    return amount if amount.is_finite() else None


class Reconciler:
    """Finalizes transactions from provider callbacks."""

    def __init__(self, store: TransactionStore, config: PaymentConfig, service_name: str = "reconciler") -> None:
        self.store = store
        self.config = config
        self.service_name = service_name

    def reconcile(self, payload: Any) -> CallbackAck:
        """Process one callback; always returns a success acknowledgement."""

        try:
            with tracer.start_as_current_span("stkpay.reconcile"):
                return self._reconcile(payload)
        except Exception:
            logger.exception("callback_processing_failed")
            return CallbackAck(result_desc="Callback received")

    def _reconcile(self, payload: Any) -> CallbackAck:
        stk = extract_stk_callback(payload)
        if stk is None:
            logger.error("invalid_callback_payload reason=missing_stk_callback")
            return CallbackAck(result_desc="Callback received")

        checkout_request_id = _optional_str(stk.get("CheckoutRequestID"))
        if checkout_request_id is None:
            logger.error("invalid_callback_payload reason=missing_checkout_request_id")
            return CallbackAck(result_desc="Callback received")
        checkout_request_id_ctx.set(checkout_request_id)

        metadata = flatten_metadata(stk)
        account = self.resolve_account(checkout_request_id, metadata)
        business_id_ctx.set(account.business_id)
        business_resolution_total.labels(service=self.service_name, source=account.source).inc()

        result_code = parse_result_code(stk.get("ResultCode"))
        status = status_for_result_code(result_code)
        tag_payment_span(
            checkout_request_id=checkout_request_id,
            business_id=account.business_id,
            status=status.value,
        )
        row = self.compose_record(checkout_request_id, stk, metadata, account, result_code, status)

        try:
            written = self.store.finalize(row)
        except PersistenceError as exc:
            persistence_failures_total.labels(service=self.service_name, stage="finalize").inc()
            logger.exception("callback_store_failed error=%s", exc.message)
            return CallbackAck(result_desc="Callback received but database storage failed")

        if not written:
            logger.info("duplicate_callback_ignored status=%s", status.value)
            return CallbackAck()

        callbacks_received_total.labels(service=self.service_name, status=status.value).inc()
        logger.info(
            "payment_%s business_id=%s account_reference=%s result_code=%s receipt=%s amount=%s",
            status.value,
            account.business_id,
            account.account_reference,
            result_code,
            row["mpesa_receipt_number"],
            row["amount"],
        )
        return CallbackAck()

    def resolve_account(self, checkout_request_id: str, metadata: dict[str, Any]) -> ResolvedAccount:
        """Work out which business and account a callback belongs to.

        The embedded AccountToken wins. Without one, the pending row written at
        initiation supplies the business; failing that the configured default
        is used so the callback is still recorded.
        """

        raw_token = next((metadata[key] for key in ACCOUNT_REFERENCE_KEYS if metadata.get(key)), None)
        from_metadata = raw_token is not None
        token = AccountToken.decode(str(raw_token) if from_metadata else checkout_request_id)
        if token.resolved:
            return ResolvedAccount(token.business_id, token.account_reference, "token")

        try:
            pending = self.store.find_pending(checkout_request_id)
        except PersistenceError as exc:
            logger.warning("pending_lookup_failed error=%s", exc.message)
            pending = None

        if pending is not None:
            # A fallback token is just the CheckoutRequestID; the stored reference is the real one.
            account_reference = token.account_reference if from_metadata else pending.account_reference
            return ResolvedAccount(pending.business_id, account_reference, "pending_lookup")

        logger.warning(
            "business_unresolved token=%s default_business_id=%s",
            token.account_reference,
            self.config.default_business_id,
        )
        return ResolvedAccount(self.config.default_business_id, token.account_reference, "default")

    def compose_record(
        self,
        checkout_request_id: str,
        stk: dict,
        metadata: dict[str, Any],
        account: ResolvedAccount,
        result_code: int | None,
        status: TransactionStatus,
    ) -> dict:
        completed = status is TransactionStatus.COMPLETED
        return {
            "checkout_request_id": checkout_request_id,
            "merchant_request_id": _optional_str(stk.get("MerchantRequestID")),
            "business_id": account.business_id,
            "account_reference": account.account_reference,
            "phone_number": _optional_str(metadata.get("PhoneNumber")),
            "amount": _optional_amount(metadata.get("Amount")),
            "result_code": result_code,
            "result_desc": _optional_str(stk.get("ResultDesc")),
            "mpesa_receipt_number": _optional_str(metadata.get("MpesaReceiptNumber")) if completed else None,
            "transaction_date": _optional_str(metadata.get("TransactionDate")) if completed else None,
            "callback_raw": stk,
            "status": status.value,
        }
