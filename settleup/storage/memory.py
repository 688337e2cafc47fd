"""
In-Memory Storage

Dict-backed implementations of the storage interfaces. Used by tests and
for local runs without a sync backend. Not shared between processes.
"""

from typing import Optional
from uuid import UUID

from settleup.models.audit import AuditEvent
from settleup.models.ledger import ExpenseRecord, PeerDebt, TransferRecord
from settleup.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage kept in dictionaries, keyed by record id."""

    def __init__(self):
        self._expenses: dict[str, dict[str, ExpenseRecord]] = {}
        self._transfers: dict[str, dict[str, TransferRecord]] = {}
        self._debts: dict[str, PeerDebt] = {}

    @staticmethod
    def _store(bucket: dict, record) -> bool:
        existing = bucket.get(record.id)
        if existing is not None:
            if existing == record:
                return False
            raise DuplicateError(f"A different record already uses id {record.id}")
        bucket[record.id] = record
        return True

    async def save_expense(self, group_id: str, expense: ExpenseRecord) -> bool:
        return self._store(self._expenses.setdefault(group_id, {}), expense)

    async def save_transfer(self, group_id: str, transfer: TransferRecord) -> bool:
        return self._store(self._transfers.setdefault(group_id, {}), transfer)

    async def save_peer_debt(self, debt: PeerDebt) -> bool:
        existing = self._debts.get(debt.id)
        if existing is not None:
            if existing == debt:
                return False
            stored_ids = existing.related_settlement_ids
            if (
                existing.original_amount != debt.original_amount
                or debt.related_settlement_ids[:len(stored_ids)] != stored_ids
            ):
                raise ConflictError(
                    f"Peer debt {debt.id} changed in storage since it was read"
                )
        self._debts[debt.id] = debt
        return True

    async def list_expenses(self, group_id: str) -> list[ExpenseRecord]:
        return list(self._expenses.get(group_id, {}).values())

    async def list_transfers(self, group_id: str) -> list[TransferRecord]:
        return list(self._transfers.get(group_id, {}).values())

    async def get_peer_debt(self, debt_id: str) -> Optional[PeerDebt]:
        return self._debts.get(debt_id)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
