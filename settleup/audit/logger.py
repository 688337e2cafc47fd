"""
Audit Logger

DESIGN DECISION: Every state change in a group or peer debt is logged.
This provides:
1. Traceability of every credit and debit
2. Debugging capability when an invariant check fails
3. A history users can inspect alongside the ledger

The audit logger:
- Is async so flows can await storage without blocking
- Gracefully handles failures (a broken audit store never blocks a settlement)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from settleup.config import AppSettings, get_settings
from settleup.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from settleup.storage import AuditStorageInterface


def configure_logging(settings: Optional[AppSettings] = None) -> str:
    """
    Configure structlog and apply the configured level to all settleup loggers.

    DEBUG_MODE forces DEBUG regardless of LOG_LEVEL.

    Returns the level name that was applied.
    """
    app = settings or get_settings().app
    level = "DEBUG" if app.debug_mode else app.log_level

    logging.basicConfig(format="%(message)s")
    logging.getLogger("settleup").setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return level


# Configure structlog for local logging
configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage backend, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("settleup.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_recorded(
        self,
        group_id: str,
        expense_id: str,
        payer_id: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_recorded(
            group_id=group_id,
            expense_id=expense_id,
            payer_id=payer_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_recorded(
        self,
        group_id: str,
        transfer_id: str,
        from_id: str,
        to_id: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_recorded(
            group_id=group_id,
            transfer_id=transfer_id,
            from_id=from_id,
            to_id=to_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_rejected(
        self,
        group_id: str,
        record_id: Optional[str],
        kind: str,
        message: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger record that failed validation."""
        event = AuditEventBuilder.record_rejected(
            group_id=group_id,
            record_id=record_id,
            kind=kind,
            message=message,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balances_computed(
        self,
        group_id: str,
        balances: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balances_computed(
            group_id=group_id,
            balances=balances,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_plan_generated(
        self,
        group_id: str,
        entry_count: int,
        total_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.plan_generated(
            group_id=group_id,
            entry_count=entry_count,
            total_amount=total_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_plan_committed(
        self,
        group_id: str,
        transfer_ids: list[str],
        newly_stored: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.plan_committed(
            group_id=group_id,
            transfer_ids=transfer_ids,
            newly_stored=newly_stored,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invariant_violation(
        self,
        entity_id: Optional[str],
        message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a conservation failure. Always CRITICAL."""
        event = AuditEventBuilder.invariant_violation(
            entity_id=entity_id,
            message=message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_created(
        self,
        debt_id: str,
        direction: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_created(
            debt_id=debt_id,
            direction=direction,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_settlement_applied(
        self,
        debt_id: str,
        settlement_id: str,
        amount: int,
        outstanding: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_settlement_applied(
            debt_id=debt_id,
            settlement_id=settlement_id,
            amount=amount,
            outstanding=outstanding,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_settled(
        self,
        debt_id: str,
        settlement_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_settled(
            debt_id=debt_id,
            settlement_id=settlement_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_debt_settlement_rejected(
        self,
        debt_id: str,
        amount: int,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.debt_settlement_rejected(
            debt_id=debt_id,
            amount=amount,
            message=message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., a settle-up session).
    Pass it through all subsequent operations.
    """
    return uuid4()
