"""API request/response schemas for the initiator endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StkPushRequest(BaseModel):
    """Payload accepted by `POST /stk/push`.

    Fields are loosely typed on purpose: presence, business, phone and amount
    rules run in that order inside the service so each failure is reported
    with its own field name.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    mpesa_number: str | None = None
    amount: Any = None
    account_reference: str | None = None
    transaction_desc: str | None = None
    business_id: str | None = None


class StkPushResult(BaseModel):
    """Successful initiation, as returned to the caller."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "STK Push initiated successfully"
    checkout_request_id: str = Field(alias="checkoutRequestID")
    request_id: str | None = Field(default=None, alias="requestID")
    business_id: str = Field(alias="businessId")


class TransactionResponse(BaseModel):
    """Read view of one stored transaction."""

    model_config = ConfigDict(from_attributes=True)

    checkout_request_id: str
    merchant_request_id: str | None
    business_id: str
    account_reference: str
    phone_number: str | None
    amount: Decimal | None
    status: str
    result_code: int | None
    result_desc: str | None
    mpesa_receipt_number: str | None
    transaction_date: str | None
    created_at: datetime | None = None
    updated_at: datetime | None = None
