"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
An in-memory store is the default; Google Sheets is available as a
persistent backend. Both follow the same interface, so they are swappable.
"""

from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    TransactionKeyConflictError,
)
from ledger_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from ledger_engine.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "TransactionKeyConflictError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
