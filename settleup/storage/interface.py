"""
Abstract Storage Interface

DESIGN DECISION: The engine never writes to storage itself. Persistence and
multi-device sync belong to an external collaborator, described here as an
interface. This allows us to:
1. Plug in whatever sync layer the application uses
2. Use in-memory storage for testing
3. Keep the money math decoupled from I/O

Contract the engine relies on: transfers are de-duplicated by id, so a
settlement plan committed twice is stored once.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from settleup.models.audit import AuditEvent
from settleup.models.ledger import ExpenseRecord, PeerDebt, TransferRecord


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger persistence.

    Records are append-only: there is no update or delete for expenses
    and transfers.
    """

    @abstractmethod
    async def save_expense(self, group_id: str, expense: ExpenseRecord) -> bool:
        """
        Store an expense.

        Returns:
            True if newly stored, False if the id was already present

        Raises:
            DuplicateError: If a different record already uses the id
            StorageConnectionError: If the backend is unreachable
        """
        pass

    @abstractmethod
    async def save_transfer(self, group_id: str, transfer: TransferRecord) -> bool:
        """
        Store a transfer, de-duplicating by id.

        Returns:
            True if newly stored, False if the id was already present

        Raises:
            DuplicateError: If a different record already uses the id
            StorageConnectionError: If the backend is unreachable
        """
        pass

    @abstractmethod
    async def save_peer_debt(self, debt: PeerDebt) -> bool:
        """
        Store the latest state of a peer debt (replaces the previous state).

        The new state must extend the stored one: same original amount,
        and the stored settlement ids as a prefix of the new ones.

        Returns:
            True if saved, False if the stored state was already identical

        Raises:
            ConflictError: If the write would drop stored settlements or
                           change the original amount
            StorageConnectionError: If the backend is unreachable
        """
        pass

    @abstractmethod
    async def list_expenses(self, group_id: str) -> list[ExpenseRecord]:
        """All expenses of a group, in the order they were stored."""
        pass

    @abstractmethod
    async def list_transfers(self, group_id: str) -> list[TransferRecord]:
        """All transfers of a group, in the order they were stored."""
        pass

    @abstractmethod
    async def get_peer_debt(self, debt_id: str) -> Optional[PeerDebt]:
        """
        Retrieve a peer debt by id.

        Returns:
            The debt if found, None otherwise
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event to the log."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConflictError(StorageError):
    """The write would discard state that is already stored."""
    pass


class DuplicateError(StorageError):
    """A different entity already uses this id."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend. Safe to retry."""
    pass
