"""
Integration tests for the ledger session flows.

Every mutation goes validate, write, reconcile; these tests drive that
pipeline against the in-memory stores.
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.audit import AuditLogger
from expense_ledger.engine.reconciliation import ReconciliationError
from expense_ledger.models.audit import AuditEventType
from expense_ledger.models.entry import EntryFilter, EntryType
from expense_ledger.orchestrator import LedgerSession, create_session
from expense_ledger.services.storage import (
    EntryNotFoundError,
    InMemoryLedgerStore,
    StoreError,
)
from expense_ledger.validation import EntryValidationError

from tests.conftest import RecordingStore, make_entry


def form(on: str, amount: str, entry_type: str = "Credit", particulars: str = "Entry") -> dict:
    return {"date": on, "particulars": particulars, "type": entry_type, "amount": amount}


def event_types(audit_storage) -> list[AuditEventType]:
    return [event.event_type for event in audit_storage.events]


class TestLoad:
    """Initial load and reload."""

    @pytest.mark.asyncio
    async def test_load_reconciles_existing_rows(self, validator, audit_storage):
        store = RecordingStore([make_entry(1, "100"), make_entry(2, "30", EntryType.DEBIT)])
        session = LedgerSession(store, validator, AuditLogger(audit_storage))

        report = await session.load()

        assert report.planned == 2
        assert [e.balance for e in session.entries] == [Decimal("100.00"), Decimal("70.00")]
        assert AuditEventType.LEDGER_RELOADED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_reload_of_settled_ledger_writes_nothing(self, session, store):
        await session.add_entry(form("2024-01-01", "10"))
        store.updates.clear()

        report = await session.reload()

        assert report.planned == 0
        assert store.updates == []


class TestAddEntry:
    """Add flow."""

    @pytest.mark.asyncio
    async def test_add_returns_reconciled_entry(self, session):
        await session.load()
        await session.add_entry(form("2024-01-01", "100"))
        added = await session.add_entry(form("2024-01-02", "25.5", "Debit"))

        assert added.id == 2
        assert added.balance == Decimal("74.50")
        assert [e.id for e in session.entries] == [1, 2]

    @pytest.mark.asyncio
    async def test_backdated_entry_shifts_later_balances(self, session):
        await session.add_entry(form("2024-01-10", "100"))
        await session.add_entry(form("2024-01-20", "50", "Debit"))

        backdated = await session.add_entry(form("2024-01-05", "10"))

        assert backdated.balance == Decimal("10.00")
        assert [(e.id, e.balance) for e in session.entries] == [
            (3, Decimal("10.00")),
            (1, Decimal("110.00")),
            (2, Decimal("60.00")),
        ]

    @pytest.mark.asyncio
    async def test_invalid_form_writes_nothing(self, session, store, audit_storage):
        with pytest.raises(EntryValidationError):
            await session.add_entry(form("2024-01-01", ""))

        assert await store.list_entries() == []
        assert event_types(audit_storage) == [AuditEventType.VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_audit_events_share_correlation_id(self, session, audit_storage):
        await session.add_entry(form("2024-01-01", "10"))

        created, reconciled = audit_storage.events
        assert created.event_type == AuditEventType.ENTRY_CREATED
        assert reconciled.event_type == AuditEventType.RECONCILIATION_COMPLETED
        assert created.correlation_id == reconciled.correlation_id


class TestUpdateAndDelete:
    """Edit and delete flows."""

    @pytest.mark.asyncio
    async def test_edit_moves_later_balances(self, session):
        await session.add_entry(form("2024-01-01", "100"))
        await session.add_entry(form("2024-01-02", "20", "Debit"))
        await session.add_entry(form("2024-01-03", "5"))

        edited = await session.update_entry(1, {"amount": "200"})

        assert edited.balance == Decimal("200.00")
        assert [e.balance for e in session.entries] == [
            Decimal("200.00"),
            Decimal("180.00"),
            Decimal("185.00"),
        ]

    @pytest.mark.asyncio
    async def test_edit_date_reorders(self, session):
        await session.add_entry(form("2024-01-01", "100"))
        await session.add_entry(form("2024-01-02", "20", "Debit"))

        await session.update_entry(1, {"date": "2024-01-03"})

        assert [(e.id, e.balance) for e in session.entries] == [
            (2, Decimal("-20.00")),
            (1, Decimal("80.00")),
        ]

    @pytest.mark.asyncio
    async def test_cannot_edit_balance(self, session):
        await session.add_entry(form("2024-01-01", "100"))
        with pytest.raises(EntryValidationError):
            await session.update_entry(1, {"balance": "5"})

    @pytest.mark.asyncio
    async def test_delete(self, session):
        await session.add_entry(form("2024-01-01", "100"))
        await session.add_entry(form("2024-01-02", "20", "Debit"))

        await session.delete_entry(1)

        assert [(e.id, e.balance) for e in session.entries] == [(2, Decimal("-20.00"))]

    @pytest.mark.asyncio
    async def test_ids_never_reused(self, session):
        await session.add_entry(form("2024-01-01", "1"))
        await session.delete_entry(1)
        added = await session.add_entry(form("2024-01-01", "1"))
        assert added.id == 2

    @pytest.mark.asyncio
    async def test_delete_unknown_entry(self, session, audit_storage):
        with pytest.raises(EntryNotFoundError) as exc_info:
            await session.delete_entry(42)
        assert exc_info.value.entry_id == 42
        assert event_types(audit_storage) == [AuditEventType.STORE_ERROR]


class TestFailures:
    """Store failures surface as StoreError and keep the last good view."""

    @pytest.mark.asyncio
    async def test_failed_balance_write(self, session, store, audit_storage):
        await session.add_entry(form("2024-01-01", "100"))
        good_view = session.entries
        store.fail_balance_for = {2}

        with pytest.raises(ReconciliationError) as exc_info:
            await session.add_entry(form("2024-01-02", "5"))

        assert exc_info.value.entry_id == 2
        assert session.entries is good_view
        assert event_types(audit_storage)[-1] == AuditEventType.RECONCILIATION_FAILED

        store.fail_balance_for = set()
        await session.reload()
        assert [e.balance for e in session.entries] == [Decimal("100.00"), Decimal("105.00")]

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_wrapped(self, validator, audit_storage):
        class BrokenStore(InMemoryLedgerStore):
            async def insert_entry(self, entry):
                raise ConnectionResetError("socket closed")

        session = LedgerSession(BrokenStore(), validator, AuditLogger(audit_storage))

        with pytest.raises(StoreError) as exc_info:
            await session.add_entry(form("2024-01-01", "1"))

        assert exc_info.value.operation == "insert"
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert session.entries == ()


class TestFilterAndSummary:
    """Read-only flows."""

    @pytest.mark.asyncio
    async def test_filter_in_memory_and_pushdown_agree(self, session, store):
        await session.add_entry(form("2024-01-01", "100", particulars="Salary"))
        await session.add_entry(form("2024-01-02", "20", "Debit", particulars="Tea"))
        await session.add_entry(form("2024-01-03", "30", "Debit", particulars="Team lunch"))
        store.updates.clear()

        entry_filter = EntryFilter(particulars_contains="tea")
        in_memory = await session.filter_entries(entry_filter)
        pushed = await session.filter_entries(entry_filter, pushdown=True)

        assert [e.id for e in in_memory] == [2, 3]
        assert pushed == in_memory
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_summary(self, session):
        await session.add_entry(form("2024-01-01", "100"))
        await session.add_entry(form("2024-02-01", "20", "Debit"))

        summary = session.summary()
        assert summary.net == Decimal("80.00")

        january = session.summary(EntryFilter(date_to=date(2024, 1, 31)))
        assert january.entry_count == 1
        assert january.total_debits == Decimal("0")


class TestCreateSession:
    """Factory fallbacks."""

    def test_without_storage_uses_memory(self):
        session = create_session(use_storage=False)
        assert isinstance(session._store, InMemoryLedgerStore)


class TestEditGuards:
    """Edits that must not change an entry behind the user's back."""

    @pytest.mark.asyncio
    async def test_blank_type_edit_keeps_debit(self, session, store):
        await session.add_entry(form("2024-01-01", "10", "Debit"))
        store.updates.clear()

        with pytest.raises(EntryValidationError):
            await session.update_entry(1, {"type": ""})

        assert store.updates == []
        entry = session.get_entry(1)
        assert entry.type == EntryType.DEBIT
        assert entry.balance == Decimal("-10.00")

    @pytest.mark.asyncio
    async def test_oversized_amount_never_reaches_store(self, session, store):
        await session.add_entry(form("2024-01-01", "10"))
        store.updates.clear()

        with pytest.raises(EntryValidationError):
            await session.update_entry(1, {"amount": "9" * 27})

        assert store.updates == []
        assert session.get_entry(1).balance == Decimal("10.00")
