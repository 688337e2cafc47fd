"""
Ledger Record Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - AMOUNT VALIDATION:
- Positive totals and transfer amounts
- Non-negative shares
- Exact split sum (integer equality, no tolerance)
- Sanity ceiling on single amounts

STAGE 2 - REFERENTIAL VALIDATION:
- Every payer, split participant, sender and receiver is a known
  participant of the group
- No self-transfers, no duplicate split entries

Both stages always run so the caller sees every issue at once.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; a record with any issue is rejected.
"""

from collections import Counter
from typing import Iterable, Optional

from settleup.config import get_settings
from settleup.models.ledger import ExpenseRecord, Participant, TransferRecord
from settleup.models.results import ValidationIssue, ValidationResult


class LedgerValidator:
    """
    Validates records against the participants of one group.

    The validator holds no state beyond the known participant ids, so one
    instance can be reused for any number of records.
    """

    def __init__(
        self,
        participants: Iterable[Participant],
        max_amount: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            participants: The group's participants. Unknown ids in records
                          are reported as issues.
            max_amount: Sanity ceiling for a single amount. Defaults to
                        the engine setting.
        """
        self._participants = tuple(participants)
        self._known_ids = frozenset(p.id for p in self._participants)
        if max_amount is None:
            max_amount = get_settings().engine.max_amount_minor_units
        self._max_amount = max_amount

    @property
    def known_ids(self) -> frozenset[str]:
        return self._known_ids

    def validate_participants(self) -> ValidationResult:
        """Check the participant list itself: ids must be unique."""
        counts = Counter(p.id for p in self._participants)
        issues = [
            ValidationIssue(
                field="participants",
                issue_type="duplicate_participant",
                message=f"Participant id '{pid}' appears {count} times",
            )
            for pid, count in sorted(counts.items())
            if count > 1
        ]
        return ValidationResult(issues=tuple(issues))

    def _check_known(
        self,
        field: str,
        participant_id: str,
        record_id: str,
    ) -> list[ValidationIssue]:
        if participant_id in self._known_ids:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="unknown_participant",
            message=f"'{participant_id}' is not a participant of this group",
            record_id=record_id,
        )]

    def _check_ceiling(
        self,
        field: str,
        amount: int,
        record_id: str,
    ) -> list[ValidationIssue]:
        if amount <= self._max_amount:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="amount_too_large",
            message=f"Amount {amount} exceeds the limit of {self._max_amount}",
            record_id=record_id,
        )]

    def validate_expense(self, expense: ExpenseRecord) -> ValidationResult:
        """
        Validate an expense record.

        Checks:
        - total_amount > 0
        - every share_amount >= 0
        - sum(share_amount) == total_amount exactly
        - payer and every split participant are known
        - at most one split entry per participant
        """
        issues = []
        rid = expense.id

        # Stage 1: amounts
        if expense.total_amount <= 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="non_positive",
                message="Expense total must be greater than zero",
                record_id=rid,
            ))
        issues.extend(self._check_ceiling("total_amount", expense.total_amount, rid))

        if not expense.splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="missing",
                message="Expense must be split across at least one participant",
                record_id=rid,
            ))

        for split in expense.splits:
            if split.share_amount < 0:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="negative_share",
                    message=f"Share for '{split.participant_id}' is negative",
                    record_id=rid,
                ))

        split_sum = sum(split.share_amount for split in expense.splits)
        if expense.splits and split_sum != expense.total_amount:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="split_mismatch",
                message=(
                    f"Shares add up to {split_sum} but the total is "
                    f"{expense.total_amount}"
                ),
                record_id=rid,
            ))

        # Stage 2: references
        issues.extend(self._check_known("payer_id", expense.payer_id, rid))

        counts = Counter(split.participant_id for split in expense.splits)
        for pid, count in counts.items():
            issues.extend(self._check_known("splits", pid, rid))
            if count > 1:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="duplicate_split",
                    message=f"'{pid}' has {count} split entries",
                    record_id=rid,
                ))

        return ValidationResult(record_id=rid, issues=tuple(issues))

    def validate_transfer(self, transfer: TransferRecord) -> ValidationResult:
        """
        Validate a transfer record.

        Checks:
        - amount > 0
        - from_id != to_id
        - both ends are known participants
        """
        issues = []
        rid = transfer.id

        if transfer.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="non_positive",
                message="Transfer amount must be greater than zero",
                record_id=rid,
            ))
        issues.extend(self._check_ceiling("amount", transfer.amount, rid))

        if transfer.from_id == transfer.to_id:
            issues.append(ValidationIssue(
                field="to_id",
                issue_type="self_transfer",
                message="A participant cannot transfer money to themselves",
                record_id=rid,
            ))

        issues.extend(self._check_known("from_id", transfer.from_id, rid))
        issues.extend(self._check_known("to_id", transfer.to_id, rid))

        return ValidationResult(record_id=rid, issues=tuple(issues))

    def validate_records(
        self,
        expenses: Iterable[ExpenseRecord],
        transfers: Iterable[TransferRecord],
    ) -> list[ValidationIssue]:
        """Validate the participant list and a whole record set; return every issue."""
        issues = list(self.validate_participants().issues)
        for expense in expenses:
            issues.extend(self.validate_expense(expense).issues)
        for transfer in transfers:
            issues.extend(self.validate_transfer(transfer).issues)
        return issues


def summarize_issues(issues: Iterable[ValidationIssue]) -> str:
    """
    One-line, human-readable summary of validation issues.

    This is what callers show next to a rejected record.
    """
    messages = [issue.message for issue in issues]
    if not messages:
        return "All checks passed"
    if len(messages) == 1:
        return messages[0]
    return f"{messages[0]} (and {len(messages) - 1} more issues)"
