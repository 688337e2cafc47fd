"""
Split Helpers

Build the splits of an expense in integer minor units.

Rounding policy: when a total does not divide evenly, every participant gets
the floor share and the leftover minor units (at most n - 1) go to the
payer's own share. The planner never rounds; balances reach it already
integral.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from settleup.models.ledger import ExpenseSplit
from settleup.models.results import ErrorKind, Outcome, ValidationIssue


def _remainder_holder(participant_ids: Sequence[str], payer_id: Optional[str]) -> str:
    if payer_id is not None and payer_id in participant_ids:
        return payer_id
    return participant_ids[0]


def _divide(
    amount: int,
    participant_ids: Sequence[str],
    payer_id: Optional[str],
) -> dict[str, int]:
    share, remainder = divmod(amount, len(participant_ids))
    shares = {pid: share for pid in participant_ids}
    shares[_remainder_holder(participant_ids, payer_id)] += remainder
    return shares


def _duplicate_ids(participant_ids: Sequence[str]) -> list[ValidationIssue]:
    seen = set()
    issues = []
    for pid in participant_ids:
        if pid in seen:
            issues.append(ValidationIssue(
                field="participant_ids",
                issue_type="duplicate_split",
                message=f"'{pid}' is listed more than once",
            ))
        seen.add(pid)
    return issues


def split_equally(
    total: int,
    participant_ids: Sequence[str],
    payer_id: Optional[str] = None,
) -> Outcome[tuple[ExpenseSplit, ...]]:
    """
    Split total equally across participant_ids.

    Example: 100 between A (payer), B, C -> A 34, B 33, C 33.
    """
    issues = []
    if total <= 0:
        issues.append(ValidationIssue(
            field="total",
            issue_type="non_positive",
            message="Expense total must be greater than zero",
        ))
    if not participant_ids:
        issues.append(ValidationIssue(
            field="participant_ids",
            issue_type="missing",
            message="Cannot split an expense between nobody",
        ))
    issues.extend(_duplicate_ids(participant_ids))
    if issues:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR, "Cannot split expense", issues=issues
        )

    shares = _divide(total, participant_ids, payer_id)
    return Outcome.success(tuple(
        ExpenseSplit(participant_id=pid, share_amount=shares[pid])
        for pid in participant_ids
    ))


def split_with_locked_amounts(
    total: int,
    participant_ids: Sequence[str],
    locked: Mapping[str, int],
    payer_id: Optional[str] = None,
) -> Outcome[tuple[ExpenseSplit, ...]]:
    """
    Keep manually entered amounts and share the rest equally.

    When someone types a fixed amount for one person, the remaining amount
    is redistributed among everybody who has not been locked.
    """
    issues = list(_duplicate_ids(participant_ids))
    if total <= 0:
        issues.append(ValidationIssue(
            field="total",
            issue_type="non_positive",
            message="Expense total must be greater than zero",
        ))

    for pid, amount in locked.items():
        if pid not in participant_ids:
            issues.append(ValidationIssue(
                field="locked",
                issue_type="unknown_participant",
                message=f"'{pid}' has a locked amount but is not in the split",
            ))
        if amount < 0:
            issues.append(ValidationIssue(
                field="locked",
                issue_type="negative_share",
                message=f"Locked amount for '{pid}' is negative",
            ))

    locked_total = sum(locked.values())
    remaining = total - locked_total
    unlocked = [pid for pid in participant_ids if pid not in locked]

    if remaining < 0:
        issues.append(ValidationIssue(
            field="locked",
            issue_type="split_exceeds_total",
            message=f"Locked amounts exceed the total by {-remaining}",
        ))
    elif remaining > 0 and not unlocked:
        issues.append(ValidationIssue(
            field="locked",
            issue_type="split_mismatch",
            message=f"Everyone is locked but {remaining} is left unassigned",
        ))

    if issues:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR, "Cannot split expense", issues=issues
        )

    shares = dict(locked)
    if unlocked:
        holder = payer_id if payer_id in unlocked else None
        shares.update(_divide(remaining, unlocked, holder))

    return Outcome.success(tuple(
        ExpenseSplit(participant_id=pid, share_amount=shares[pid])
        for pid in participant_ids
    ))
