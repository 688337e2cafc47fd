"""
Data Models Package

This package contains all Pydantic models used by the settlement engine.
All data flowing through the engine must conform to these schemas.
"""

from settleup.models.ledger import (
    BalanceDetails,
    DebtDirection,
    DebtSettlement,
    DebtStatus,
    ExpenseRecord,
    ExpenseSplit,
    Participant,
    PeerDebt,
    PeerDebtSummary,
    PlannedTransfer,
    SettlementPlan,
    TransferRecord,
)
from settleup.models.results import (
    EngineError,
    ErrorKind,
    Outcome,
    ValidationIssue,
    ValidationResult,
)
from settleup.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BalanceDetails",
    "DebtDirection",
    "DebtSettlement",
    "DebtStatus",
    "ExpenseRecord",
    "ExpenseSplit",
    "Participant",
    "PeerDebt",
    "PeerDebtSummary",
    "PlannedTransfer",
    "SettlementPlan",
    "TransferRecord",
    # Results
    "EngineError",
    "ErrorKind",
    "Outcome",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
