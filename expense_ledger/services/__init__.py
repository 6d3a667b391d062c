"""Services package."""

from expense_ledger.services.storage import (
    AuditStorageInterface,
    EntryNotFoundError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    StoreConnectionError,
    StoreError,
)

__all__ = [
    "AuditStorageInterface",
    "EntryNotFoundError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "LedgerStoreInterface",
    "StoreConnectionError",
    "StoreError",
]
