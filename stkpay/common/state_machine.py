"""Transaction statuses, result-code mapping and allowed transitions."""

from enum import StrEnum


class TransactionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Sentinel stored while a push is awaiting its callback.
PENDING_RESULT_CODE = -1

# Daraja STK callback ResultCode -> status. Extend as new codes are seen;
# anything not listed degrades to FAILED.
RESULT_CODE_STATUS: dict[int, TransactionStatus] = {
    0: TransactionStatus.COMPLETED,
    1: TransactionStatus.INSUFFICIENT_FUNDS,
    2: TransactionStatus.INSUFFICIENT_AMOUNT,
    17: TransactionStatus.CANCELLED,
}

TERMINAL_STATUSES: frozenset[TransactionStatus] = frozenset(
    status for status in TransactionStatus if status is not TransactionStatus.PENDING
)

ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: TERMINAL_STATUSES,
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


def parse_result_code(raw) -> int | None:
    """Coerce a callback ResultCode (int or numeric string) to int."""

    if isinstance(raw, bool):
        return None
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def status_for_result_code(result_code: int | None) -> TransactionStatus:
    """Map a provider result code to a terminal status; never raises."""

    if result_code is None:
        return TransactionStatus.FAILED
    return RESULT_CODE_STATUS.get(result_code, TransactionStatus.FAILED)


def can_transition(current: str, new: str) -> bool:
    """True when `current -> new` is allowed by the state machine."""

    return TransactionStatus(new) in ALLOWED_TRANSITIONS.get(TransactionStatus(current), frozenset())


def statuses_leading_to(new: str) -> list[str]:
    """Statuses a row may be in for a transition to `new` to be applied."""

    return [status.value for status in TransactionStatus if can_transition(status, new)]
