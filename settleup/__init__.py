"""
SettleUp - Debt & Settlement Engine

Turns shared-expense and transfer records for a group into net balances,
a minimal settle-up plan, and tracks one-to-one peer debts through
partial repayment.

DESIGN PRINCIPLES:
1. Records are immutable, the ledger is append-only
2. Balances are a pure fold over records, recomputed on demand
3. Money is integer minor units, never binary floats
4. Fail visibly: errors are classified and returned, never silently fixed
5. Storage is an external collaborator behind an interface
"""

__version__ = "1.0.0"
__author__ = "SettleUp Team"
