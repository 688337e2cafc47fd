"""
Tests for the balance calculator.

Covers the reference trip scenario, conservation, transfer direction and
rejection of malformed record sets.
"""

from settleup.balances import (
    check_conservation,
    compute_balance_details,
    compute_balances,
)
from settleup.models.ledger import (
    ExpenseRecord,
    ExpenseSplit,
    TransferRecord,
)
from settleup.models.results import ErrorKind


class TestComputeBalances:
    """Tests for folding records into net balances."""

    def test_no_records(self, participants):
        balances = compute_balances(participants, [], []).unwrap()
        assert balances == {"A": 0, "B": 0, "C": 0}

    def test_trip_scenario(self, participants, dinner, cab):
        """A +180, B -60, C -120."""
        balances = compute_balances(participants, [dinner, cab], []).unwrap()
        assert balances == {"A": 180, "B": -60, "C": -120}

    def test_conservation(self, participants, dinner, cab):
        balances = compute_balances(participants, [dinner, cab], []).unwrap()
        assert sum(balances.values()) == 0

    def test_transfer_pays_down_debt(self, participants, dinner, cab):
        """A transfer from debtor to creditor moves both toward zero."""
        transfer = TransferRecord(from_id="C", to_id="A", amount=120)
        balances = compute_balances(participants, [dinner, cab], [transfer]).unwrap()
        assert balances == {"A": 60, "B": -60, "C": 0}

    def test_order_does_not_matter(self, participants, dinner, cab):
        forward = compute_balances(participants, [dinner, cab], []).unwrap()
        backward = compute_balances(participants, [cab, dinner], []).unwrap()
        assert forward == backward

    def test_unknown_participant_is_validation_error(self, participants):
        expense = ExpenseRecord(
            payer_id="Z",
            total_amount=100,
            splits=(ExpenseSplit(participant_id="A", share_amount=100),),
        )
        outcome = compute_balances(participants, [expense], [])
        assert outcome.error.kind == ErrorKind.VALIDATION_ERROR

    def test_split_mismatch_is_validation_error(self, participants):
        expense = ExpenseRecord(
            payer_id="A",
            total_amount=100,
            splits=(ExpenseSplit(participant_id="B", share_amount=99),),
        )
        outcome = compute_balances(participants, [expense], [])
        assert outcome.error.kind == ErrorKind.VALIDATION_ERROR
        assert outcome.error.issues[0].issue_type == "split_mismatch"


class TestBalanceDetails:
    """Tests for the per-participant breakdown."""

    def test_breakdown(self, participants, dinner, cab):
        transfer = TransferRecord(from_id="B", to_id="A", amount=60)
        details = compute_balance_details(participants, [dinner, cab], [transfer]).unwrap()

        assert details["A"].total_paid == 300
        assert details["A"].total_share == 120
        assert details["A"].transfers_received == 60
        assert details["A"].net == 120

        assert details["B"].total_paid == 60
        assert details["B"].transfers_sent == 60
        assert details["B"].net == 0


class TestConservationCheck:
    """Tests for the explicit conservation check."""

    def test_balanced_map(self):
        assert check_conservation({"A": 5, "B": -5}).ok is True

    def test_leaking_map(self):
        outcome = check_conservation({"A": 5, "B": -4})
        assert outcome.error.kind == ErrorKind.INVARIANT_VIOLATION
        assert outcome.error.details["total_net"] == 1
