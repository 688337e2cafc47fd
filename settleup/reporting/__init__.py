"""Reporting package."""

from settleup.reporting.summary import (
    ContributingExpense,
    CostBreakdownItem,
    build_cost_breakdown,
    find_contributing_expenses,
    render_plan_summary,
    render_share_text,
)

__all__ = [
    "ContributingExpense",
    "CostBreakdownItem",
    "build_cost_breakdown",
    "find_contributing_expenses",
    "render_plan_summary",
    "render_share_text",
]
