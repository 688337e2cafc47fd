"""
Balance Calculator

Folds one group's records into a net balance per participant.

The fold:
- every participant starts at 0
- expense: payer +total_amount, each split participant -share_amount
  (the payer's own share nets out)
- transfer: sender +amount (debt paid down), receiver -amount
  (credit paid out)

Every addition has a matching subtraction, so the sum of all nets is
exactly 0 for any valid record set. That conservation law is still
checked after every fold: a non-zero sum means money is unaccounted for
and is reported as an INVARIANT_VIOLATION, never corrected.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from settleup.models.ledger import (
    BalanceDetails,
    ExpenseRecord,
    Participant,
    TransferRecord,
)
from settleup.models.results import ErrorKind, Outcome
from settleup.validation import LedgerValidator, summarize_issues


logger = structlog.get_logger(__name__)


def _fold(
    participants: Sequence[Participant],
    expenses: Sequence[ExpenseRecord],
    transfers: Sequence[TransferRecord],
) -> dict[str, dict[str, int]]:
    totals = {
        p.id: {
            "total_paid": 0,
            "total_share": 0,
            "transfers_sent": 0,
            "transfers_received": 0,
        }
        for p in participants
    }

    for expense in expenses:
        totals[expense.payer_id]["total_paid"] += expense.total_amount
        for split in expense.splits:
            totals[split.participant_id]["total_share"] += split.share_amount

    for transfer in transfers:
        totals[transfer.from_id]["transfers_sent"] += transfer.amount
        totals[transfer.to_id]["transfers_received"] += transfer.amount

    return totals


def compute_balance_details(
    participants: Iterable[Participant],
    expenses: Iterable[ExpenseRecord],
    transfers: Iterable[TransferRecord],
) -> Outcome[dict[str, BalanceDetails]]:
    """
    Per-participant breakdown (paid, share, transfers, net).

    Records are validated first; an unknown participant or a malformed
    record is a VALIDATION_ERROR and never enters the fold.
    """
    participants = tuple(participants)
    expenses = tuple(expenses)
    transfers = tuple(transfers)

    issues = LedgerValidator(participants).validate_records(expenses, transfers)
    if issues:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR,
            summarize_issues(issues),
            issues=issues,
        )

    totals = _fold(participants, expenses, transfers)
    details = {
        pid: BalanceDetails(participant_id=pid, **values)
        for pid, values in totals.items()
    }

    total_net = sum(d.net for d in details.values())
    if total_net != 0:
        logger.error(
            "conservation_violated",
            total_net=total_net,
            participant_count=len(details),
        )
        return Outcome.failure(
            ErrorKind.INVARIANT_VIOLATION,
            f"Net balances sum to {total_net} instead of 0",
            details={"total_net": total_net},
        )

    logger.debug(
        "balances_computed",
        participant_count=len(details),
        expense_count=len(expenses),
        transfer_count=len(transfers),
    )
    return Outcome.success(details)


def compute_balances(
    participants: Iterable[Participant],
    expenses: Iterable[ExpenseRecord],
    transfers: Iterable[TransferRecord],
) -> Outcome[dict[str, int]]:
    """
    Net balance per participant id.

    Positive = is owed money by the group, negative = owes the group.
    """
    outcome = compute_balance_details(participants, expenses, transfers)
    if not outcome.ok:
        return outcome
    return Outcome.success({pid: d.net for pid, d in outcome.value.items()})


def check_conservation(balances: dict[str, int]) -> Outcome[dict[str, int]]:
    """Verify that a balance map sums to exactly zero."""
    total_net = sum(balances.values())
    if total_net != 0:
        logger.error("conservation_violated", total_net=total_net)
        return Outcome.failure(
            ErrorKind.INVARIANT_VIOLATION,
            f"Net balances sum to {total_net} instead of 0",
            details={"total_net": total_net},
        )
    return Outcome.success(balances)
