"""
Group Ledger

An append-only event log for one group/trip. Appending returns a NEW
ledger; nothing is ever edited in place, so recomputing balances from
the full record set is always reproducible.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from settleup.models.ledger import ExpenseRecord, Participant, TransferRecord
from settleup.models.results import ErrorKind, Outcome, ValidationIssue
from settleup.validation import LedgerValidator, summarize_issues


logger = structlog.get_logger(__name__)


class GroupLedger(BaseModel):
    """
    Validated records for one group.

    Only records that passed LedgerValidator are ever stored here.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    group_id: str = Field(..., min_length=1)
    name: str = Field(default="", max_length=100)
    participants: tuple[Participant, ...] = ()
    expenses: tuple[ExpenseRecord, ...] = ()
    transfers: tuple[TransferRecord, ...] = ()

    @classmethod
    def create(
        cls,
        group_id: str,
        participants: Iterable[Participant],
        name: str = "",
    ) -> Outcome[GroupLedger]:
        """Start an empty ledger; participant ids must be unique."""
        participants = tuple(participants)
        result = LedgerValidator(participants).validate_participants()
        if not result.is_valid:
            return Outcome.failure(
                ErrorKind.VALIDATION_ERROR,
                summarize_issues(result.issues),
                issues=list(result.issues),
            )
        return Outcome.success(
            cls(group_id=group_id, name=name, participants=participants)
        )

    @property
    def validator(self) -> LedgerValidator:
        return LedgerValidator(self.participants)

    def participant(self, participant_id: str) -> Optional[Participant]:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    @property
    def current_user(self) -> Optional[Participant]:
        for p in self.participants:
            if p.is_current_user:
                return p
        return None

    @property
    def display_names(self) -> dict[str, str]:
        return {p.id: p.display_name for p in self.participants}

    @property
    def total_spent(self) -> int:
        return sum(e.total_amount for e in self.expenses)

    @property
    def transfer_ids(self) -> frozenset[str]:
        return frozenset(t.id for t in self.transfers)

    def _existing(self, record_id: str, records: tuple) -> Optional[BaseModel]:
        for record in records:
            if record.id == record_id:
                return record
        return None

    def _reject(self, record_id: str, issues: list[ValidationIssue]) -> Outcome:
        logger.info(
            "record_rejected",
            group_id=self.group_id,
            record_id=record_id,
            issue_count=len(issues),
        )
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR,
            summarize_issues(issues),
            issues=issues,
            details={"group_id": self.group_id, "record_id": record_id},
        )

    def _conflict(self, record_id: str) -> list[ValidationIssue]:
        return [ValidationIssue(
            field="id",
            issue_type="duplicate_record",
            message=f"A different record with id '{record_id}' already exists",
            record_id=record_id,
        )]

    def record_expense(self, expense: ExpenseRecord) -> Outcome[GroupLedger]:
        """
        Validate and append an expense.

        Re-appending an identical record is a no-op, so replaying a sync
        batch never double-counts.
        """
        existing = self._existing(expense.id, self.expenses)
        if existing is not None:
            if existing == expense:
                return Outcome.success(self)
            return self._reject(expense.id, self._conflict(expense.id))

        result = self.validator.validate_expense(expense)
        if not result.is_valid:
            return self._reject(expense.id, list(result.issues))

        return Outcome.success(
            self.model_copy(update={"expenses": self.expenses + (expense,)})
        )

    def record_transfer(self, transfer: TransferRecord) -> Outcome[GroupLedger]:
        """Validate and append a transfer (idempotent by id)."""
        existing = self._existing(transfer.id, self.transfers)
        if existing is not None:
            if existing == transfer:
                return Outcome.success(self)
            return self._reject(transfer.id, self._conflict(transfer.id))

        result = self.validator.validate_transfer(transfer)
        if not result.is_valid:
            return self._reject(transfer.id, list(result.issues))

        return Outcome.success(
            self.model_copy(update={"transfers": self.transfers + (transfer,)})
        )

    def record_transfers(
        self,
        transfers: Iterable[TransferRecord],
    ) -> Outcome[GroupLedger]:
        """Append several transfers; all of them or none."""
        ledger = self
        for transfer in transfers:
            outcome = ledger.record_transfer(transfer)
            if not outcome.ok:
                return outcome
            ledger = outcome.value
        return Outcome.success(ledger)
