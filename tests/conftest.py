"""
Shared fixtures for SettleUp tests.

The "trip" fixtures reproduce the reference scenario: A pays 300 for dinner
split equally, B pays 60 for a cab split equally. Net balances are
A +180, B -60, C -120.
"""

import pytest

from settleup.ledger import GroupLedger, split_equally
from settleup.models.ledger import ExpenseRecord, Participant


@pytest.fixture
def participants():
    return (
        Participant(id="A", display_name="Alice", is_current_user=True),
        Participant(id="B", display_name="Bob"),
        Participant(id="C", display_name="Carol"),
    )


@pytest.fixture
def equal_expense():
    """Factory for an expense split equally between the given ids."""

    def _make(expense_id, payer_id, total, participant_ids, title=""):
        splits = split_equally(total, participant_ids, payer_id).unwrap()
        return ExpenseRecord(
            id=expense_id,
            payer_id=payer_id,
            total_amount=total,
            splits=splits,
            title=title,
        )

    return _make


@pytest.fixture
def dinner(equal_expense):
    return equal_expense("dinner", "A", 300, ["A", "B", "C"], title="Dinner")


@pytest.fixture
def cab(equal_expense):
    return equal_expense("cab", "B", 60, ["A", "B", "C"], title="Cab")


@pytest.fixture
def empty_ledger(participants):
    return GroupLedger.create("trip", participants, name="Goa Trip").unwrap()


@pytest.fixture
def trip_ledger(empty_ledger, dinner, cab):
    ledger = empty_ledger.record_expense(dinner).unwrap()
    return ledger.record_expense(cab).unwrap()
