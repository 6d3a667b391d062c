"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the real backend; the in-memory stores serve tests and
unconfigured installs.
"""

from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryNotFoundError,
    LedgerStoreInterface,
    StoreConnectionError,
    StoreError,
)
from expense_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from expense_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "EntryNotFoundError",
    "StoreConnectionError",
    "StoreError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
