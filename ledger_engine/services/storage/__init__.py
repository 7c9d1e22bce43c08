"""
Storage Services Package

Provides the abstract storage interfaces the engine depends on, and an
in-memory implementation of them. Real backends live outside this package.
"""

from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
    StorageError,
)
from ledger_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
]
