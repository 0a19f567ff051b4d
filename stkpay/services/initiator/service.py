"""STK push initiation.

Validates caller input, pushes the payment prompt through Daraja and records a
`pending` transaction keyed by the returned CheckoutRequestID.

Validation and configuration errors are raised before any provider call.
Provider errors are raised before anything is stored. Once a push is accepted
the caller gets a success result even if the pending write fails.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import httpx

from stkpay.common.account_token import DELIMITER, encode_account_token
from stkpay.common.config import PaymentConfig
from stkpay.common.errors import PersistenceError, ProviderError, ValidationError
from stkpay.common.logging import business_id_ctx, checkout_request_id_ctx, logger
from stkpay.common.metrics import persistence_failures_total, stk_push_requests_total
from stkpay.common.phone import normalize_msisdn
from stkpay.common.state_machine import PENDING_RESULT_CODE
from stkpay.common.store import TransactionStore
from stkpay.common.tracing import tag_payment_span, tracer
from stkpay.services.initiator.daraja import DarajaClient, request_timestamp
from stkpay.services.initiator.schemas import StkPushRequest, StkPushResult


REQUIRED_FIELDS = ("mpesa_number", "amount", "account_reference", "transaction_desc", "business_id")
# Largest value the Numeric(12, 2) amount column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def parse_amount(raw) -> tuple[Decimal, int]:
    """Return the requested amount and the whole-unit amount Daraja will charge."""

    if isinstance(raw, bool):
        raise ValidationError("Amount must be a positive number", field="amount")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a positive number", field="amount") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number", field="amount")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}", field="amount")
    charged = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if charged < 1:
        raise ValidationError("Amount must be at least 1 after rounding to whole units", field="amount")
    return amount, charged


class Initiator:
    """Turns a caller's payment request into a provider push + pending row."""

    def __init__(
        self,
        store: TransactionStore,
        config: PaymentConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str = "initiator",
    ) -> None:
        self.store = store
        self.config = config
        self.transport = transport
        self.service_name = service_name

    def validate(self, req: StkPushRequest) -> tuple[str, Decimal, int]:
        """Run the input rules in order; return (msisdn, amount, charged amount)."""

        missing = [name for name in REQUIRED_FIELDS if _is_blank(getattr(req, name))]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                field="fields",
            )

        business_id = req.business_id.strip()
        if DELIMITER in business_id:
            raise ValidationError(
                f"Business id must not contain {DELIMITER!r}: {req.business_id}",
                field="business",
            )
        business = self.store.get_active_business(business_id)
        if business is None:
            raise ValidationError(
                f"Unknown or inactive business: {req.business_id}",
                field="business",
            )

        msisdn = normalize_msisdn(req.mpesa_number)
        amount, charged = parse_amount(req.amount)
        return msisdn, amount, charged

    async def initiate(self, req: StkPushRequest) -> StkPushResult:
        """Validate, push, and record the pending transaction."""

        msisdn, amount, charged = self.validate(req)
        business_id = req.business_id.strip()
        business_id_ctx.set(business_id)
        self.config.require_credentials()

        account_token = encode_account_token(business_id, req.account_reference.strip())
        async with DarajaClient(self.config, transport=self.transport) as client:
            with tracer.start_as_current_span("daraja.stk_push"):
                try:
                    access_token = await client.fetch_access_token()
                    payload = client.build_push_payload(
                        phone=msisdn,
                        amount=charged,
                        account_reference=account_token,
                        description=req.transaction_desc.strip(),
                        timestamp=request_timestamp(),
                    )
                    ack = await client.stk_push(access_token, payload)
                except ProviderError:
                    stk_push_requests_total.labels(service=self.service_name, outcome="provider_error").inc()
                    raise
                tag_payment_span(checkout_request_id=ack.checkout_request_id, business_id=business_id)

        checkout_request_id_ctx.set(ack.checkout_request_id or "")
        stk_push_requests_total.labels(service=self.service_name, outcome="accepted").inc()
        logger.info(
            "stk_push_accepted business_id=%s checkout_request_id=%s merchant_request_id=%s",
            business_id,
            ack.checkout_request_id,
            ack.merchant_request_id,
        )

        if ack.checkout_request_id:
            self._record_pending(
                {
                    "checkout_request_id": ack.checkout_request_id,
                    "merchant_request_id": ack.merchant_request_id,
                    "business_id": business_id,
                    "account_reference": req.account_reference.strip(),
                    "phone_number": msisdn,
                    "amount": amount,
                    "result_code": PENDING_RESULT_CODE,
                    "result_desc": ack.description,
                    "mpesa_receipt_number": None,
                    "transaction_date": None,
                }
            )
        else:
            logger.warning("stk_push_accepted_without_checkout_request_id business_id=%s", business_id)

        return StkPushResult(
            checkout_request_id=ack.checkout_request_id or "",
            request_id=ack.merchant_request_id,
            business_id=business_id,
        )

    def _record_pending(self, row: dict) -> None:
        try:
            written = self.store.insert_pending(row)
        except PersistenceError as exc:
            persistence_failures_total.labels(service=self.service_name, stage="pending_insert").inc()
            logger.exception(
                "pending_insert_failed checkout_request_id=%s error=%s",
                row["checkout_request_id"],
                exc.message,
            )
            return
        if not written:
            logger.info(
                "pending_insert_skipped checkout_request_id=%s reason=row_exists",
                row["checkout_request_id"],
            )
