"""Transaction/business persistence used by both services.

Writes are single `INSERT ... ON CONFLICT` statements keyed by
`checkout_request_id`, so replicated handlers and redelivered callbacks need no
in-process locking to stay at one row per push.
"""

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from stkpay.common.errors import PersistenceError
from stkpay.common.models import Business, Transaction
from stkpay.common.state_machine import TransactionStatus, statuses_leading_to


ACTIVE_STATUS = "active"

# Callback fields a later callback may leave out; the stored value wins then.
COALESCED_COLUMNS = ("phone_number", "amount", "merchant_request_id")
FINAL_COLUMNS = (
    "business_id",
    "account_reference",
    "result_code",
    "result_desc",
    "mpesa_receipt_number",
    "transaction_date",
    "callback_raw",
    "status",
)


def _upsert_insert(db):
    """Return the dialect `insert` construct that supports ON CONFLICT."""

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise PersistenceError(f"upsert not supported for dialect {dialect}")


class TransactionStore:
    """Point lookups and idempotent writes over `businesses`/`transactions`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def get_active_business(self, business_id: str) -> Business | None:
        """Return the business if it exists with status `active` (any case)."""

        try:
            with self.session_factory() as db:
                return db.execute(
                    select(Business).where(
                        Business.business_id == business_id,
                        func.lower(Business.status) == ACTIVE_STATUS,
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"business lookup failed: {exc}") from exc

    def get_transaction(self, checkout_request_id: str) -> Transaction | None:
        try:
            with self.session_factory() as db:
                return db.get(Transaction, checkout_request_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"transaction lookup failed: {exc}") from exc

    def find_pending(self, checkout_request_id: str) -> Transaction | None:
        try:
            with self.session_factory() as db:
                return db.execute(
                    select(Transaction).where(
                        Transaction.checkout_request_id == checkout_request_id,
                        Transaction.status == TransactionStatus.PENDING.value,
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"pending lookup failed: {exc}") from exc

    def insert_pending(self, row: dict) -> bool:
        """Insert a pending row; no-op if the callback already created one.

        Returns True when a row was written.
        """

        try:
            with self.session_factory() as db:
                insert = _upsert_insert(db)
                stmt = (
                    insert(Transaction)
                    .values(status=TransactionStatus.PENDING.value, **row)
                    .on_conflict_do_nothing(index_elements=[Transaction.checkout_request_id])
                )
                result = db.execute(stmt)
                db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"pending insert failed: {exc}") from exc

    def finalize(self, row: dict) -> bool:
        """Insert or update the terminal record for one callback.

        An existing row is only updated while its status still allows the
        transition (i.e. it is `pending`); a replayed callback for a finalized
        push leaves it untouched. Returns True when a row was written.
        """

        try:
            with self.session_factory() as db:
                insert = _upsert_insert(db)
                stmt = insert(Transaction).values(**row)
                excluded = stmt.excluded
                update_values = {name: excluded[name] for name in FINAL_COLUMNS}
                for name in COALESCED_COLUMNS:
                    update_values[name] = func.coalesce(excluded[name], getattr(Transaction, name))
                update_values["updated_at"] = func.now()
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Transaction.checkout_request_id],
                    set_=update_values,
                    where=Transaction.status.in_(statuses_leading_to(row["status"])),
                )
                result = db.execute(stmt)
                db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"transaction finalize failed: {exc}") from exc
