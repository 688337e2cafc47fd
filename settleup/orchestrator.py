"""
Main Orchestrator for SettleUp

This module ties the pure engine to audit logging and storage, and defines
the end-to-end flows for:
1. Group settlement (record → balances → plan → commit)
2. Peer debts (create → partial settlements → settled)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The engine computes, it never persists; only flows touch storage
- Nothing reaches storage unless the engine accepted it
- Every step is audited, every invariant violation is CRITICAL

Storage writes are retried with exponential backoff on connection errors.
Retrying is safe because every record is de-duplicated by id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from settleup.audit import AuditLogger, create_correlation_id
from settleup.balances import compute_balance_details
from settleup.config import get_settings
from settleup.debts import apply_settlement, create_peer_debt, debts_from_plan
from settleup.ledger import GroupLedger
from settleup.models.ledger import (
    BalanceDetails,
    DebtDirection,
    DebtStatus,
    ExpenseRecord,
    Participant,
    PeerDebt,
    SettlementPlan,
    TransferRecord,
)
from settleup.models.results import EngineError, ErrorKind, Outcome, ValidationIssue
from settleup.settlement import commit_plan, plan_settlements
from settleup.storage import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)


class _PersistingFlow:
    """Shared storage and audit plumbing for the flows."""

    def __init__(
        self,
        storage: Optional[LedgerStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = get_settings().engine

    async def _persist(
        self,
        operation: str,
        *args: Any,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Run a storage write with retries.

        Returns True when the record was newly stored, False when storage
        already had it (or no storage is configured).

        Raises:
            StorageError: After retries are exhausted, or immediately for
                          non-retryable storage errors
        """
        if self._storage is None:
            return False

        write = getattr(self._storage, operation)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.storage_retry_attempts),
            wait=wait_exponential(
                multiplier=self._settings.storage_retry_backoff_seconds,
                max=10,
            ),
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    stored = await write(*args)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        return stored

    async def _audit_error(
        self,
        error: EngineError,
        entity_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger and error.kind == ErrorKind.INVARIANT_VIOLATION:
            await self._audit_logger.log_invariant_violation(
                entity_id=entity_id,
                message=error.message,
                details=error.details,
                correlation_id=correlation_id,
            )


class GroupSettlementFlow(_PersistingFlow):
    """
    Orchestrates a group's ledger and its settle-up.

    Flow:
    1. Record → validate and append expenses/transfers
    2. Balances → fold the ledger into net balances
    3. Plan → propose the minimal transfer set
    4. Commit → once the plan is accepted, store it as transfers

    Each step returns a new GroupLedger or a value; the caller keeps the
    latest ledger.
    """

    async def load_ledger(
        self,
        group_id: str,
        participants: Iterable[Participant],
        name: str = "",
    ) -> Outcome[GroupLedger]:
        """
        Rebuild a ledger from the records held in storage.

        Every stored record is re-validated on the way in.
        """
        outcome = GroupLedger.create(group_id, participants, name=name)
        if not outcome.ok or self._storage is None:
            return outcome

        ledger = outcome.value
        for expense in await self._storage.list_expenses(group_id):
            outcome = ledger.record_expense(expense)
            if not outcome.ok:
                return outcome
            ledger = outcome.value

        outcome = ledger.record_transfers(await self._storage.list_transfers(group_id))
        if outcome.ok:
            logger.info(
                "ledger_loaded",
                group_id=group_id,
                expense_count=len(outcome.value.expenses),
                transfer_count=len(outcome.value.transfers),
            )
        return outcome

    async def record_expense(
        self,
        ledger: GroupLedger,
        expense: ExpenseRecord,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[GroupLedger]:
        """Validate, append and persist an expense."""
        correlation_id = correlation_id or create_correlation_id()

        outcome = ledger.record_expense(expense)
        if not outcome.ok:
            await self._audit_rejection(ledger.group_id, expense.id, outcome.error, correlation_id)
            return outcome

        await self._persist(
            "save_expense",
            ledger.group_id,
            expense,
            correlation_id=correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_expense_recorded(
                group_id=ledger.group_id,
                expense_id=expense.id,
                payer_id=expense.payer_id,
                amount=expense.total_amount,
                correlation_id=correlation_id,
            )
        return outcome

    async def record_transfer(
        self,
        ledger: GroupLedger,
        transfer: TransferRecord,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[GroupLedger]:
        """Validate, append and persist a direct payment between members."""
        correlation_id = correlation_id or create_correlation_id()

        outcome = ledger.record_transfer(transfer)
        if not outcome.ok:
            await self._audit_rejection(ledger.group_id, transfer.id, outcome.error, correlation_id)
            return outcome

        await self._persist(
            "save_transfer",
            ledger.group_id,
            transfer,
            correlation_id=correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transfer_recorded(
                group_id=ledger.group_id,
                transfer_id=transfer.id,
                from_id=transfer.from_id,
                to_id=transfer.to_id,
                amount=transfer.amount,
                correlation_id=correlation_id,
            )
        return outcome

    async def _audit_rejection(
        self,
        group_id: str,
        record_id: Optional[str],
        error: EngineError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_record_rejected(
                group_id=group_id,
                record_id=record_id,
                kind=error.kind.value,
                message=error.message,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in error.issues
                ],
                correlation_id=correlation_id,
            )

    async def compute_balances(
        self,
        ledger: GroupLedger,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[dict[str, BalanceDetails]]:
        """Per-participant balance details for the ledger."""
        correlation_id = correlation_id or create_correlation_id()

        outcome = compute_balance_details(
            ledger.participants, ledger.expenses, ledger.transfers
        )
        if not outcome.ok:
            await self._audit_error(outcome.error, ledger.group_id, correlation_id)
            return outcome

        if self._audit_logger:
            await self._audit_logger.log_balances_computed(
                group_id=ledger.group_id,
                balances={pid: d.net for pid, d in outcome.value.items()},
                correlation_id=correlation_id,
            )
        return outcome

    async def propose_plan(
        self,
        ledger: GroupLedger,
        generated_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[SettlementPlan]:
        """
        Compute balances and the settlement plan that zeroes them.

        The plan is only a proposal: nothing is recorded until
        commit() is called with it.
        """
        correlation_id = correlation_id or create_correlation_id()

        balances = await self.compute_balances(ledger, correlation_id=correlation_id)
        if not balances.ok:
            return balances

        outcome = plan_settlements(
            {pid: d.net for pid, d in balances.value.items()},
            group_id=ledger.group_id,
            generated_at=generated_at,
            epsilon=self._settings.epsilon_minor_units,
        )
        if not outcome.ok:
            await self._audit_error(outcome.error, ledger.group_id, correlation_id)
            return outcome

        if self._audit_logger:
            await self._audit_logger.log_plan_generated(
                group_id=ledger.group_id,
                entry_count=len(outcome.value.entries),
                total_amount=outcome.value.total_amount,
                correlation_id=correlation_id,
            )
        return outcome

    async def commit(
        self,
        ledger: GroupLedger,
        plan: SettlementPlan,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[GroupLedger]:
        """
        Record an accepted plan as transfers.

        CRITICAL: Call this only once the participants accepted the plan.
        Committing the same plan again records nothing new.
        """
        correlation_id = correlation_id or create_correlation_id()

        records = commit_plan(plan, existing_transfer_ids=ledger.transfer_ids)
        outcome = ledger.record_transfers(records)
        if not outcome.ok:
            await self._audit_rejection(ledger.group_id, None, outcome.error, correlation_id)
            return outcome

        newly_stored = 0
        for record in records:
            stored = await self._persist(
                "save_transfer",
                ledger.group_id,
                record,
                correlation_id=correlation_id,
            )
            if stored:
                newly_stored += 1

        if self._audit_logger:
            await self._audit_logger.log_plan_committed(
                group_id=ledger.group_id,
                transfer_ids=[plan.transfer_id(entry) for entry in plan.entries],
                newly_stored=newly_stored,
                correlation_id=correlation_id,
            )
        return outcome


class PeerDebtFlow(_PersistingFlow):
    """
    Orchestrates one-to-one lent/borrowed debts.

    Flow:
    1. Create → record the original amount
    2. Settle → apply partial repayments until nothing is outstanding

    A rejected settlement leaves the stored debt untouched.
    """

    async def create_debt(
        self,
        owner_id: str,
        counterparty_id: str,
        direction: DebtDirection,
        amount: int,
        description: str = "",
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[PeerDebt]:
        correlation_id = correlation_id or create_correlation_id()

        outcome = create_peer_debt(
            owner_id,
            counterparty_id,
            direction,
            amount,
            description=description,
            group_id=group_id,
        )
        if not outcome.ok:
            return outcome

        debt = outcome.value
        await self._persist(
            "save_peer_debt",
            debt,
            correlation_id=correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_debt_created(
                debt_id=debt.id,
                direction=debt.direction.value,
                amount=debt.original_amount,
                correlation_id=correlation_id,
            )
        return outcome

    async def settle(
        self,
        debt: PeerDebt,
        amount: int,
        settlement_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[PeerDebt]:
        """
        Apply a (partial) repayment and persist the new debt state.

        With storage configured the repayment is applied to the stored
        state, so a stale copy of the debt never rolls back earlier
        settlements.
        """
        correlation_id = correlation_id or create_correlation_id()

        if self._storage is not None:
            stored = await self._storage.get_peer_debt(debt.id)
            if stored is not None:
                debt = stored

        outcome = apply_settlement(debt, amount, settlement_id=settlement_id)
        if not outcome.ok:
            if self._audit_logger:
                await self._audit_logger.log_debt_settlement_rejected(
                    debt_id=debt.id,
                    amount=amount,
                    message=outcome.error.message,
                    correlation_id=correlation_id,
                )
            return outcome

        updated = outcome.value
        await self._persist(
            "save_peer_debt",
            updated,
            correlation_id=correlation_id,
        )

        if self._audit_logger:
            applied_id = updated.related_settlement_ids[-1]
            await self._audit_logger.log_debt_settlement_applied(
                debt_id=updated.id,
                settlement_id=applied_id,
                amount=amount,
                outstanding=updated.outstanding_amount,
                correlation_id=correlation_id,
            )
            if updated.status == DebtStatus.SETTLED:
                await self._audit_logger.log_debt_settled(
                    debt_id=updated.id,
                    settlement_id=applied_id,
                    correlation_id=correlation_id,
                )
        return outcome

    async def settle_by_id(
        self,
        debt_id: str,
        amount: int,
        settlement_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[PeerDebt]:
        """
        Load a debt from storage and settle it.

        Returns a VALIDATION_ERROR outcome when the debt does not exist.
        """
        debt = None
        if self._storage is not None:
            debt = await self._storage.get_peer_debt(debt_id)
        if debt is None:
            return Outcome.failure(
                ErrorKind.VALIDATION_ERROR,
                f"Peer debt {debt_id} not found",
                details={"debt_id": debt_id},
            )
        return await self.settle(
            debt, amount, settlement_id=settlement_id, correlation_id=correlation_id
        )

    async def import_plan(
        self,
        plan: SettlementPlan,
        owner_id: str,
        description: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> Outcome[list[PeerDebt]]:
        """
        Track the owner's side of a group plan as peer debts.

        Importing the same plan again is a no-op: debts that are already
        tracked are returned in their stored state, repayments included.
        A tracked debt whose amount or parties differ from the plan is
        reported as a VALIDATION_ERROR and nothing is saved.
        """
        correlation_id = correlation_id or create_correlation_id()

        tracked = []
        new_debts = []
        conflicts = []
        for debt in debts_from_plan(plan, owner_id, description=description):
            existing = None
            if self._storage is not None:
                existing = await self._storage.get_peer_debt(debt.id)

            if existing is None:
                new_debts.append(debt)
                tracked.append(debt)
            elif (
                existing.original_amount != debt.original_amount
                or existing.direction != debt.direction
                or existing.counterparty_id != debt.counterparty_id
            ):
                conflicts.append(ValidationIssue(
                    field="original_amount",
                    issue_type="conflicting_debt",
                    message=(
                        f"Already tracking {existing.original_amount} with "
                        f"{existing.counterparty_id}, plan says "
                        f"{debt.original_amount} with {debt.counterparty_id}"
                    ),
                    record_id=debt.id,
                ))
            else:
                tracked.append(existing)

        if conflicts:
            logger.warning(
                "plan_import_conflict",
                group_id=plan.group_id,
                debt_ids=[issue.record_id for issue in conflicts],
            )
            return Outcome.failure(
                ErrorKind.VALIDATION_ERROR,
                f"{len(conflicts)} plan debt(s) conflict with debts already tracked",
                issues=conflicts,
            )

        for debt in new_debts:
            await self._persist(
                "save_peer_debt",
                debt,
                correlation_id=correlation_id,
            )
            if self._audit_logger:
                await self._audit_logger.log_debt_created(
                    debt_id=debt.id,
                    direction=debt.direction.value,
                    amount=debt.original_amount,
                    correlation_id=correlation_id,
                )
        return Outcome.success(tracked)


def create_app_components(
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> tuple[GroupSettlementFlow, PeerDebtFlow]:
    """
    Factory function to create all application components.

    Args:
        storage: Ledger storage collaborator. None keeps everything in
                 the returned ledgers only.
        audit_storage: Where audit events are persisted. None logs locally.

    Returns:
        (group_settlement_flow, peer_debt_flow)
    """
    audit_logger = AuditLogger(audit_storage)

    group_flow = GroupSettlementFlow(storage=storage, audit_logger=audit_logger)
    debt_flow = PeerDebtFlow(storage=storage, audit_logger=audit_logger)

    return group_flow, debt_flow
