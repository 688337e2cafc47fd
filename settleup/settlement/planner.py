"""
Settlement Planner

Turns net balances into an ordered list of suggested transfers that
brings every balance to zero with as few transfers as possible
(the "minimum cash flow" problem).

Algorithm (greedy, largest vs largest):
1. Creditors (net > EPSILON) and debtors (net < -EPSILON) go into two
   max-heaps keyed by magnitude. Balances within EPSILON of zero are
   already settled and left out.
2. Pop the largest creditor and the largest debtor, emit
   debtor -> creditor for the smaller of the two magnitudes, and push back
   whichever side still has more than EPSILON left.
3. Stop when either heap is empty. Both must be empty at that point.

Each step removes at least one participant, so the plan has at most
(non-zero participants - 1) entries.

Ties: heap entries are (-magnitude, participant_id), so equal magnitudes
pop in lexical id order and the same balances always give the same plan.
"""

from __future__ import annotations

import heapq
from datetime import datetime
from typing import Mapping, Optional

import structlog

from settleup.config import get_settings
from settleup.models.ledger import PlannedTransfer, SettlementPlan
from settleup.models.results import ErrorKind, Outcome


logger = structlog.get_logger(__name__)


def _build_heaps(
    balances: Mapping[str, int],
    epsilon: int,
) -> tuple[list[tuple[int, str]], list[tuple[int, str]]]:
    creditors = []
    debtors = []
    for participant_id, net in balances.items():
        if net > epsilon:
            creditors.append((-net, participant_id))
        elif net < -epsilon:
            debtors.append((net, participant_id))  # already negative
    heapq.heapify(creditors)
    heapq.heapify(debtors)
    return creditors, debtors


def _violation(message: str, details: dict) -> Outcome[SettlementPlan]:
    logger.error("settlement_plan_invariant_violated", reason=message, **details)
    return Outcome.failure(ErrorKind.INVARIANT_VIOLATION, message, details=details)


def plan_settlements(
    balances: Mapping[str, int],
    group_id: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    epsilon: Optional[int] = None,
) -> Outcome[SettlementPlan]:
    """
    Build the settlement plan for a balance map.

    Args:
        balances: Net balance per participant id, in minor units.
        group_id: Group the plan belongs to (carried onto the plan).
        generated_at: Plan generation time. Part of every committed
                      transfer id; pass the accepted plan's value when
                      re-planning for comparison.
        epsilon: Zero tolerance in minor units. Defaults to the engine
                 setting.

    Returns:
        Outcome with the SettlementPlan, or INVARIANT_VIOLATION when the
        balances do not sum to zero or cannot be fully matched.
    """
    if epsilon is None:
        epsilon = get_settings().engine.epsilon_minor_units

    total_net = sum(balances.values())
    if total_net != 0:
        return _violation(
            f"Cannot plan: balances sum to {total_net} instead of 0",
            {"total_net": total_net, "group_id": group_id},
        )

    creditors, debtors = _build_heaps(balances, epsilon)
    entries = []

    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit = -neg_credit
        debt = -neg_debt

        amount = min(credit, debt)
        entries.append(PlannedTransfer(from_id=debtor, to_id=creditor, amount=amount))

        credit -= amount
        debt -= amount
        if credit > epsilon:
            heapq.heappush(creditors, (-credit, creditor))
        if debt > epsilon:
            heapq.heappush(debtors, (-debt, debtor))

    if creditors or debtors:
        leftover = {pid: -neg for neg, pid in creditors}
        leftover.update({pid: neg for neg, pid in debtors})
        return _violation(
            "Settlement plan could not zero every balance",
            {"leftover": leftover, "group_id": group_id},
        )

    plan_kwargs = {"group_id": group_id, "entries": tuple(entries)}
    if generated_at is not None:
        plan_kwargs["generated_at"] = generated_at
    plan = SettlementPlan(**plan_kwargs)

    logger.debug(
        "settlement_plan_generated",
        group_id=group_id,
        entry_count=len(entries),
        total_amount=plan.total_amount,
    )
    return Outcome.success(plan)


def apply_plan(
    balances: Mapping[str, int],
    plan: SettlementPlan,
) -> dict[str, int]:
    """
    Balances after every planned transfer has been paid.

    The payer's balance rises by the amount, the receiver's falls by it,
    exactly as a committed TransferRecord would move them.
    """
    result = dict(balances)
    for entry in plan.entries:
        result[entry.from_id] = result.get(entry.from_id, 0) + entry.amount
        result[entry.to_id] = result.get(entry.to_id, 0) - entry.amount
    return result
