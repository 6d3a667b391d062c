"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the balance engine decoupled from storage implementation

The store is treated as an at-least-once, per-call-atomic remote table.
Nothing here is transactional across calls; the reconciler is built
so that it does not need to be.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from expense_ledger.models.audit import AuditEvent
from expense_ledger.models.entry import Entry, EntryFilter, NewEntry


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger entry storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_entries(
        self,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[Entry]:
        """
        List entries, optionally narrowed by read-side predicates.

        Args:
            entry_filter: Predicates to push down to the store

        Returns:
            Matching entries in whatever order the store likes

        Raises:
            StoreError: If the read fails
        """
        pass

    @abstractmethod
    async def insert_entry(self, entry: NewEntry) -> Entry:
        """
        Insert a new entry.

        Args:
            entry: Validated entry without id or balance

        Returns:
            The stored entry with its assigned id and no balance

        Raises:
            StoreError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_entry_fields(
        self,
        entry_id: int,
        fields: dict[str, Any],
    ) -> None:
        """
        Overwrite some fields of one entry, leaving the others untouched.

        Args:
            entry_id: The entry's identifier
            fields: Partial field set (never contains 'id')

        Raises:
            EntryNotFoundError: If the entry doesn't exist
            StoreError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: int) -> None:
        """
        Delete an entry by ID.

        Raises:
            EntryNotFoundError: If the entry doesn't exist
            StoreError: If the delete fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one user action and its reconciliation).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StoreError(Exception):
    """
    Base exception for storage operations.

    Carries the operation and, where there is one, the entry id so the
    presentation layer can say exactly what failed.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        entry_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.entry_id = entry_id


class EntryNotFoundError(StoreError):
    """Entry not found in storage."""
    pass


class StoreConnectionError(StoreError):
    """Could not connect to storage backend."""
    pass
