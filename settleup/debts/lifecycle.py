"""
Peer Debt Lifecycle

Tracks a single lent/borrowed obligation through partial repayments.

States:
    pending (settled_amount = 0)
      -> pending (0 < settled_amount < original_amount)
      -> settled (terminal, outstanding <= EPSILON)

CRITICAL:
- original_amount is never changed; "Lent 800" stays 800 forever
- settled_amount only grows
- no overpayment: anything beyond the obligation is a separate
  transaction for the caller to record (e.g. a gift)
- every operation returns a NEW debt; the input is left untouched
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional
from uuid import uuid4

import structlog

from settleup.models.ledger import (
    DebtDirection,
    DebtSettlement,
    DebtStatus,
    PeerDebt,
    PeerDebtSummary,
    SettlementPlan,
)
from settleup.models.results import ErrorKind, Outcome, ValidationIssue


logger = structlog.get_logger(__name__)


def create_peer_debt(
    owner_id: str,
    counterparty_id: str,
    direction: DebtDirection,
    amount: int,
    description: str = "",
    debt_id: Optional[str] = None,
    group_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Outcome[PeerDebt]:
    """Record a new lent/borrowed obligation."""
    if amount <= 0:
        return Outcome.failure(
            ErrorKind.INVALID_AMOUNT,
            "Debt amount must be greater than zero",
            details={"amount": amount},
        )
    if owner_id == counterparty_id:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR,
            "Cannot lend to or borrow from yourself",
            issues=[ValidationIssue(
                field="counterparty_id",
                issue_type="self_debt",
                message="Owner and counterparty must be different people",
                record_id=debt_id,
            )],
        )

    fields = {
        "owner_id": owner_id,
        "counterparty_id": counterparty_id,
        "direction": direction,
        "original_amount": amount,
        "description": description,
        "group_id": group_id,
    }
    if debt_id is not None:
        fields["id"] = debt_id
    if created_at is not None:
        fields["created_at"] = created_at
    return Outcome.success(PeerDebt(**fields))


def apply_settlement(
    debt: PeerDebt,
    amount: int,
    settlement_id: Optional[str] = None,
) -> Outcome[PeerDebt]:
    """
    Apply a (partial) repayment.

    Fails with INVALID_AMOUNT, leaving the debt unchanged, when:
    - amount <= 0
    - the debt is already settled
    - settled_amount + amount > original_amount + EPSILON

    A settlement id that was already applied fails with VALIDATION_ERROR.
    """
    epsilon = debt.tolerance_minor_units

    if settlement_id is not None and settlement_id in debt.related_settlement_ids:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR,
            f"Settlement {settlement_id} was already applied to debt {debt.id}",
            issues=[ValidationIssue(
                field="settlement_id",
                issue_type="duplicate_settlement",
                message="This repayment is already recorded",
                record_id=settlement_id,
            )],
        )

    if amount <= 0:
        return _invalid(debt, amount, "Settlement amount must be greater than zero")

    if debt.status == DebtStatus.SETTLED:
        return _invalid(debt, amount, "Debt is already settled")

    if debt.settled_amount + amount > debt.original_amount + epsilon:
        return _invalid(
            debt,
            amount,
            f"Settlement of {amount} exceeds the outstanding "
            f"{debt.outstanding_amount}",
        )

    settlement_id = settlement_id or str(uuid4())
    updated = debt.model_copy(update={
        "settled_amount": debt.settled_amount + amount,
        "related_settlement_ids": debt.related_settlement_ids + (settlement_id,),
    })

    logger.debug(
        "debt_settlement_applied",
        debt_id=debt.id,
        settlement_id=settlement_id,
        amount=amount,
        outstanding=updated.outstanding_amount,
        status=updated.status.value,
    )
    return Outcome.success(updated)


def _invalid(debt: PeerDebt, amount: int, message: str) -> Outcome[PeerDebt]:
    return Outcome.failure(
        ErrorKind.INVALID_AMOUNT,
        message,
        details={
            "debt_id": debt.id,
            "amount": amount,
            "outstanding_amount": debt.outstanding_amount,
        },
    )


def apply_settlement_event(
    debt: PeerDebt,
    event: DebtSettlement,
) -> Outcome[PeerDebt]:
    """Apply a recorded DebtSettlement; the event must belong to the debt."""
    if event.debt_id != debt.id:
        return Outcome.failure(
            ErrorKind.VALIDATION_ERROR,
            f"Settlement {event.id} belongs to debt {event.debt_id}, not {debt.id}",
            issues=[ValidationIssue(
                field="debt_id",
                issue_type="wrong_debt",
                message="Settlement event does not belong to this debt",
                record_id=event.id,
            )],
        )
    return apply_settlement(debt, event.amount, settlement_id=event.id)


def replay_settlements(
    debt: PeerDebt,
    events: Iterable[DebtSettlement],
) -> Outcome[PeerDebt]:
    """
    Rebuild a debt's state from its original amount and settlement events.

    Events are applied in settled_at order (ties keep their given order).
    """
    current = debt.model_copy(update={
        "settled_amount": 0,
        "related_settlement_ids": (),
    })
    for event in sorted(events, key=lambda e: e.settled_at):
        outcome = apply_settlement_event(current, event)
        if not outcome.ok:
            return outcome
        current = outcome.value
    return Outcome.success(current)


def summarize_peer_debts(
    debts: Iterable[PeerDebt],
    owner_id: Optional[str] = None,
) -> PeerDebtSummary:
    """
    Outstanding totals: what is still to be received and still to be paid.

    Only pending debts count; settled debts are neutral. When owner_id is
    given, debts recorded by other owners are ignored.
    """
    pending_lent = 0
    pending_borrowed = 0
    pending_count = 0
    settled_count = 0

    for debt in debts:
        if owner_id is not None and debt.owner_id != owner_id:
            continue
        if debt.status == DebtStatus.SETTLED:
            settled_count += 1
            continue
        pending_count += 1
        outstanding = max(0, debt.outstanding_amount)
        if debt.direction == DebtDirection.LENT:
            pending_lent += outstanding
        else:
            pending_borrowed += outstanding

    return PeerDebtSummary(
        pending_lent=pending_lent,
        pending_borrowed=pending_borrowed,
        pending_count=pending_count,
        settled_count=settled_count,
    )


def debts_from_plan(
    plan: SettlementPlan,
    owner_id: str,
    description: str = "",
) -> list[PeerDebt]:
    """
    Express the plan entries that involve owner_id as peer debts.

    Someone paying the owner becomes a LENT debt, the owner paying
    someone becomes BORROWED. Ids are derived from the group and the pair,
    so recomputing a plan yields the same debt ids.
    """
    debts = []
    for entry in plan.entries:
        if entry.to_id == owner_id:
            direction = DebtDirection.LENT
            counterparty = entry.from_id
        elif entry.from_id == owner_id:
            direction = DebtDirection.BORROWED
            counterparty = entry.to_id
        else:
            continue

        debts.append(PeerDebt(
            id=f"group_settlement_{plan.group_id or 'adhoc'}_{entry.from_id}_{entry.to_id}",
            owner_id=owner_id,
            counterparty_id=counterparty,
            direction=direction,
            original_amount=entry.amount,
            description=description,
            group_id=plan.group_id,
            created_at=plan.generated_at,
        ))
    return debts
