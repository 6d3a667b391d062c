"""
Shared fixtures for the Expense Ledger tests.

No test touches Google. Stores are either the in-memory ones or
fakes built on top of them.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import pytest

from expense_ledger.audit import AuditLogger
from expense_ledger.config.settings import LedgerSettings
from expense_ledger.models.entry import Entry, EntryFilter, EntryType
from expense_ledger.orchestrator import LedgerSession
from expense_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    StoreError,
)
from expense_ledger.validation import EntryValidator


def make_entry(
    entry_id: int,
    amount: str,
    entry_type: EntryType = EntryType.CREDIT,
    on: date = date(2024, 1, 1),
    balance: Optional[str] = None,
    particulars: str = "Entry",
) -> Entry:
    return Entry(
        id=entry_id,
        date=on,
        particulars=particulars,
        type=entry_type,
        amount=Decimal(amount),
        balance=Decimal(balance) if balance is not None else None,
    )


class RecordingStore(InMemoryLedgerStore):
    """In-memory store that counts calls and can fail chosen balance writes."""

    def __init__(self, entries: Optional[list[Entry]] = None):
        super().__init__(entries)
        self.list_calls = 0
        self.updates: list[tuple[int, dict]] = []
        self.fail_balance_for: set[int] = set()

    async def list_entries(self, entry_filter: Optional[EntryFilter] = None) -> list[Entry]:
        self.list_calls += 1
        return await super().list_entries(entry_filter)

    async def update_entry_fields(self, entry_id: int, fields: dict[str, Any]) -> None:
        self.updates.append((entry_id, dict(fields)))
        if "balance" in fields and entry_id in self.fail_balance_for:
            raise StoreError(
                f"Quota exceeded writing entry {entry_id}",
                operation="update",
                entry_id=entry_id,
            )
        await super().update_entry_fields(entry_id, fields)

    def stored(self, entry_id: int) -> Entry:
        return self._rows[entry_id]


class GatedStore(RecordingStore):
    """Blocks the first list call until the test opens the gate."""

    def __init__(self, entries: Optional[list[Entry]] = None):
        super().__init__(entries)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def list_entries(self, entry_filter: Optional[EntryFilter] = None) -> list[Entry]:
        if self.list_calls == 0:
            self.list_calls += 1
            self.entered.set()
            await self.gate.wait()
            return await InMemoryLedgerStore.list_entries(self, entry_filter)
        return await super().list_entries(entry_filter)


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def validator(ledger_settings):
    return EntryValidator(ledger_settings)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def session(store, validator, audit_storage):
    return LedgerSession(
        store=store,
        validator=validator,
        audit_logger=AuditLogger(audit_storage),
    )
