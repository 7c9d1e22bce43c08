"""Services package."""

from ledger_engine.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "LedgerStoreInterface",
    "StorageError",
]
