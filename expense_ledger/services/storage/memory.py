"""
In-Memory Storage Implementation

Dict-backed stores that honour the same contracts as the Google Sheets
ones. Used in tests and as the fallback backend when no spreadsheet is
configured. Contents are lost when the process exits.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError

from expense_ledger.models.audit import AuditEvent
from expense_ledger.models.entry import Entry, EntryFilter, NewEntry
from expense_ledger.queries.predicates import filter_entries
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryNotFoundError,
    LedgerStoreInterface,
    StoreError,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Ledger store held in a dict keyed by entry id.

    Ids come from a counter that only ever goes up, so a deleted id is
    never handed out again.
    """

    def __init__(self, entries: Optional[list[Entry]] = None):
        self._rows: dict[int, Entry] = {}
        self._next_id = 1
        for entry in entries or []:
            self._rows[entry.id] = entry
            self._next_id = max(self._next_id, entry.id + 1)

    async def list_entries(
        self,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[Entry]:
        return filter_entries(self._rows.values(), entry_filter)

    async def insert_entry(self, entry: NewEntry) -> Entry:
        stored = Entry(id=self._next_id, **entry.entry_fields())
        self._rows[stored.id] = stored
        self._next_id += 1
        return stored

    async def update_entry_fields(
        self,
        entry_id: int,
        fields: dict[str, Any],
    ) -> None:
        if "id" in fields:
            raise StoreError(
                "Entry ids cannot be changed",
                operation="update",
                entry_id=entry_id,
            )
        current = self._rows.get(entry_id)
        if current is None:
            raise EntryNotFoundError(
                f"Entry not found: {entry_id}",
                operation="update",
                entry_id=entry_id,
            )
        # Re-validate so the stored row obeys the same schema as a fresh one.
        try:
            self._rows[entry_id] = Entry(**{**current.model_dump(), **fields})
        except ValidationError as e:
            raise StoreError(
                f"Entry {entry_id} rejected by store: {e}",
                operation="update",
                entry_id=entry_id,
            ) from e

    async def delete_entry(self, entry_id: int) -> None:
        if self._rows.pop(entry_id, None) is None:
            raise EntryNotFoundError(
                f"Entry not found: {entry_id}",
                operation="delete",
                entry_id=entry_id,
            )


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""

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
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
