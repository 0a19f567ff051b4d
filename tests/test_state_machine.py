"""Unit tests for result-code mapping and transaction state guardrails."""

import pytest

from stkpay.common.state_machine import (
    TransactionStatus,
    can_transition,
    parse_result_code,
    status_for_result_code,
    statuses_leading_to,
)


@pytest.mark.parametrize(
    ("code", "status"),
    [
        (0, "completed"),
        (1, "insufficient_funds"),
        (2, "insufficient_amount"),
        (17, "cancelled"),
        (99, "failed"),
        (1032, "failed"),
        (None, "failed"),
    ],
)
def test_result_code_mapping(code, status):
    """Known codes map to their status; anything else degrades to failed."""

    assert status_for_result_code(code) == status


def test_result_code_parsing_accepts_numeric_strings():
    assert parse_result_code("17") == 17
    assert parse_result_code(" 0 ") == 0
    assert parse_result_code("abc") is None
    assert parse_result_code(None) is None
    assert parse_result_code(True) is None


def test_pending_can_reach_every_terminal_status():
    for status in TransactionStatus:
        if status is TransactionStatus.PENDING:
            continue
        assert can_transition("pending", status)


def test_terminal_statuses_are_final():
    """No transition may leave a terminal status, including to itself."""

    assert not can_transition("completed", "failed")
    assert not can_transition("cancelled", "completed")
    assert not can_transition("failed", "failed")
    assert statuses_leading_to("completed") == ["pending"]


def test_unknown_status_raises():
    with pytest.raises(ValueError):
        can_transition("pending", "settled")
