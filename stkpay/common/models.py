"""Shared store models.

Both services read and write the same two tables: the initiator checks
`businesses` and seeds `transactions`, the reconciler finalizes them.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from stkpay.common.db import Base
from stkpay.common.state_machine import TransactionStatus


class Business(Base):
    """A merchant allowed to request pushes through the shared short code."""

    __tablename__ = "businesses"

    business_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, default="")
    status: Mapped[str] = mapped_column(String, default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Transaction(Base):
    """One STK push, keyed by the provider's CheckoutRequestID."""

    __tablename__ = "transactions"

    checkout_request_id: Mapped[str] = mapped_column(String, primary_key=True)
    merchant_request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    business_id: Mapped[str] = mapped_column(String, index=True)
    account_reference: Mapped[str] = mapped_column(String)
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    result_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_desc: Mapped[str | None] = mapped_column(String, nullable=True)
    mpesa_receipt_number: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_date: Mapped[str | None] = mapped_column(String, nullable=True)
    callback_raw: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    status: Mapped[str] = mapped_column(String, default=TransactionStatus.PENDING.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
