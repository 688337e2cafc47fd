"""
Settlement Reporting

Human-readable views of balances and plans. Everything here is a pure
function of its inputs: rendering never changes a plan or a ledger.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

from settleup.ledger import GroupLedger, split_equally
from settleup.models.ledger import (
    BalanceDetails,
    ExpenseRecord,
    Participant,
    SettlementPlan,
)
from settleup.money import format_money


MAX_BREAKDOWN_NOTES = 5
MAX_CONTRIBUTING_TITLES = 3


class ContributingExpense(BaseModel):
    """An expense that explains part of a planned transfer."""
    model_config = ConfigDict(frozen=True)

    expense_id: str
    title: str
    share_amount: int


class CostBreakdownItem(BaseModel):
    """Per-participant paid/share summary with explanatory notes."""
    model_config = ConfigDict(frozen=True)

    participant_id: str
    display_name: str
    total_paid: int = 0
    total_share: int = 0
    net: int = 0
    notes: tuple[str, ...] = Field(default_factory=tuple)


def _names(participants: Union[Iterable[Participant], Mapping[str, str]]) -> dict[str, str]:
    if isinstance(participants, Mapping):
        return dict(participants)
    return {p.id: p.display_name for p in participants}


def render_plan_summary(
    plan: SettlementPlan,
    participants: Union[Iterable[Participant], Mapping[str, str]],
) -> str:
    """
    Numbered "A pays B ₹X" lines for a plan.

    Ids without a known name are shown as-is.
    """
    names = _names(participants)
    if plan.is_empty:
        return "All settled! No payments needed."

    lines = []
    for index, entry in enumerate(plan.entries, start=1):
        payer = names.get(entry.from_id, entry.from_id)
        payee = names.get(entry.to_id, entry.to_id)
        lines.append(f"{index}. {payer} pays {payee} {format_money(entry.amount)}")
    return "\n".join(lines)


def find_contributing_expenses(
    debtor_id: str,
    creditor_id: str,
    expenses: Iterable[ExpenseRecord],
) -> list[ContributingExpense]:
    """Expenses paid by the creditor in which the debtor had a share."""
    contributing = []
    for expense in expenses:
        if expense.payer_id != creditor_id:
            continue
        share = expense.share_of(debtor_id)
        if share > 0:
            contributing.append(ContributingExpense(
                expense_id=expense.id,
                title=expense.title or "Untitled expense",
                share_amount=share,
            ))
    return contributing


def render_share_text(
    ledger: GroupLedger,
    plan: SettlementPlan,
    details: Mapping[str, BalanceDetails],
) -> str:
    """
    Group summary suitable for pasting into a chat.

    Sections: total spent, per-person paid/share, the current user's status
    (when one participant is marked as the current user) and the final
    settlement with the expenses behind each payment.
    """
    names = ledger.display_names
    me = ledger.current_user

    def label(participant_id: str) -> str:
        if me is not None and participant_id == me.id:
            return "Me"
        return names.get(participant_id, participant_id)

    lines = [f"*{ledger.name or ledger.group_id}*", ""]

    lines.append("*Group Summary*")
    lines.append(f"Total Spent: {format_money(ledger.total_spent)}")
    lines.append("")

    lines.append("*Per Person Breakdown*")
    for p in ledger.participants:
        d = details.get(p.id)
        if d is None:
            continue
        name = f"{p.display_name} (Me)" if p.is_current_user else p.display_name
        lines.append(
            f"{name}: Paid {format_money(d.total_paid)}, "
            f"Share {format_money(d.total_share)}"
        )
    lines.append("")

    if me is not None and me.id in details:
        mine = details[me.id]
        lines.append("*Your Status*")
        lines.append(f"Total Paid: {format_money(mine.total_paid)}")
        lines.append(f"Actual Share: {format_money(mine.total_share)}")
        if mine.net > 0:
            lines.append(f"You get back: {format_money(mine.net)}")
        elif mine.net < 0:
            lines.append(f"You owe: {format_money(-mine.net)}")
        else:
            lines.append("You're all settled!")
        lines.append("")

    if plan.is_empty:
        lines.append("*All Settled!*")
        lines.append("No pending settlements.")
        return "\n".join(lines)

    lines.append("*Final Settlement*")
    for index, entry in enumerate(plan.entries, start=1):
        lines.append(
            f"{index}. {label(entry.from_id)} -> {label(entry.to_id)}: "
            f"{format_money(entry.amount)}"
        )
        contributing = find_contributing_expenses(
            entry.from_id, entry.to_id, ledger.expenses
        )
        if contributing:
            titles = ", ".join(c.title for c in contributing[:MAX_CONTRIBUTING_TITLES])
            lines.append(f"   (For: {titles})")

    return "\n".join(lines)


def _equal_shares(expense: ExpenseRecord) -> dict[str, int]:
    ids = [s.participant_id for s in expense.splits]
    outcome = split_equally(expense.total_amount, ids, expense.payer_id)
    if not outcome.ok:
        return {}
    return {s.participant_id: s.share_amount for s in outcome.value}


def build_cost_breakdown(
    ledger: GroupLedger,
    details: Mapping[str, BalanceDetails],
) -> list[CostBreakdownItem]:
    """
    Explain each participant's share.

    Notes flag expenses a participant was left out of and expenses where
    their share differs from an equal split. At most five notes each.
    """
    items = []
    for p in ledger.participants:
        notes = []
        for expense in ledger.expenses:
            title = expense.title or "Untitled expense"
            share = expense.share_of(p.id)
            if share == 0:
                notes.append(f'Excluded from "{title}"')
                continue
            expected = _equal_shares(expense).get(p.id)
            if expected is not None and share != expected:
                notes.append(f'Custom split in "{title}" ({format_money(share)})')

        d = details.get(p.id) or BalanceDetails(participant_id=p.id)
        items.append(CostBreakdownItem(
            participant_id=p.id,
            display_name=p.display_name,
            total_paid=d.total_paid,
            total_share=d.total_share,
            net=d.net,
            notes=tuple(notes[:MAX_BREAKDOWN_NOTES]),
        ))
    return items
