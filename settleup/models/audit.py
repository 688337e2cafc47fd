"""
Audit Models for SettleUp

Every significant engine action is logged for audit purposes.
This provides:
1. Complete traceability of who was credited or debited and why
2. Debugging information when an invariant is violated
3. Ability to reconstruct history alongside the append-only ledger

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Group ledger
    EXPENSE_RECORDED = "expense_recorded"
    TRANSFER_RECORDED = "transfer_recorded"
    RECORD_REJECTED = "record_rejected"

    # Balances & plans
    BALANCES_COMPUTED = "balances_computed"
    PLAN_GENERATED = "plan_generated"
    PLAN_COMMITTED = "plan_committed"
    INVARIANT_VIOLATION = "invariant_violation"

    # Peer debts
    DEBT_CREATED = "debt_created"
    DEBT_SETTLEMENT_APPLIED = "debt_settlement_applied"
    DEBT_SETTLED = "debt_settled"
    DEBT_SETTLEMENT_REJECTED = "debt_settlement_rejected"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'expense', 'peer_debt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one settle-up session)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_row(self) -> list:
        """
        Convert to a flat row for tabular storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_code, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, sort_keys=True) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_recorded(group_id, expense_id, 30000, cid)
        event = AuditEventBuilder.invariant_violation(group_id, message, details, cid)
    """

    @staticmethod
    def expense_recorded(
        group_id: str,
        expense_id: str,
        payer_id: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense recorded in group {group_id}",
            details={
                "group_id": group_id,
                "payer_id": payer_id,
                "amount": amount,
            },
        )

    @staticmethod
    def transfer_recorded(
        group_id: str,
        transfer_id: str,
        from_id: str,
        to_id: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_RECORDED,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer recorded in group {group_id}",
            details={
                "group_id": group_id,
                "from_id": from_id,
                "to_id": to_id,
                "amount": amount,
            },
        )

    @staticmethod
    def record_rejected(
        group_id: str,
        record_id: Optional[str],
        kind: str,
        message: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record rejected with {len(issues)} issues",
            details={
                "group_id": group_id,
                "issues": issues,
            },
            error_code=kind,
            error_message=message,
        )

    @staticmethod
    def balances_computed(
        group_id: str,
        balances: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Balances computed for {len(balances)} participants",
            details={"balances": balances},
        )

    @staticmethod
    def plan_generated(
        group_id: str,
        entry_count: int,
        total_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_GENERATED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Settlement plan generated with {entry_count} transfers",
            details={
                "entry_count": entry_count,
                "total_amount": total_amount,
            },
        )

    @staticmethod
    def plan_committed(
        group_id: str,
        transfer_ids: list[str],
        newly_stored: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_COMMITTED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Settlement plan committed ({newly_stored} new transfers)",
            details={
                "transfer_ids": transfer_ids,
                "newly_stored": newly_stored,
            },
        )

    @staticmethod
    def invariant_violation(
        entity_id: Optional[str],
        message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATION,
            severity=AuditSeverity.CRITICAL,
            entity_type="group",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description="Invariant violation: money unaccounted for",
            details=details or {},
            error_code="invariant_violation",
            error_message=message,
        )

    @staticmethod
    def debt_created(
        debt_id: str,
        direction: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_CREATED,
            entity_type="peer_debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Peer debt created ({direction})",
            details={
                "direction": direction,
                "original_amount": amount,
            },
        )

    @staticmethod
    def debt_settlement_applied(
        debt_id: str,
        settlement_id: str,
        amount: int,
        outstanding: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLEMENT_APPLIED,
            entity_type="peer_debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description="Partial settlement applied to peer debt",
            details={
                "settlement_id": settlement_id,
                "amount": amount,
                "outstanding_amount": outstanding,
            },
        )

    @staticmethod
    def debt_settled(
        debt_id: str,
        settlement_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLED,
            entity_type="peer_debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description="Peer debt fully settled",
            details={"settlement_id": settlement_id},
        )

    @staticmethod
    def debt_settlement_rejected(
        debt_id: str,
        amount: int,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="peer_debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description="Peer debt settlement rejected",
            details={"amount": amount},
            error_code="invalid_amount",
            error_message=message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
