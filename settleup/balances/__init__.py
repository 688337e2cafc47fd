"""Balance calculation package."""

from settleup.balances.calculator import (
    check_conservation,
    compute_balance_details,
    compute_balances,
)

__all__ = ["check_conservation", "compute_balance_details", "compute_balances"]
