"""
Storage Package

Interfaces for the external persistence/sync collaborator, plus in-memory
implementations.
"""

from settleup.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    LedgerStorageInterface,
    StorageConnectionError,
    StorageError,
)
from settleup.storage.memory import InMemoryAuditStorage, InMemoryLedgerStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
]
