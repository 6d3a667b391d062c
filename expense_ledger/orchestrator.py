"""
Ledger Session for Expense Ledger

This module ties together all the components and defines the
end-to-end flows the presentation layer drives:
1. Add (form → validate → insert → reconcile)
2. Edit (changes → validate → update → reconcile)
3. Delete (id → delete → reconcile)
4. Reload (read everything → reconcile)
5. Filter (read-only, never reconciles)

DESIGN DECISION: Reconciliation is an explicit stage at the end of
every mutating flow, not something that happens when the list length
changes. An edit that keeps the entry count the same still moves
balances, so it still triggers a pass.

The session never retries. A failed action is retried by repeating it;
reconciliation converges however many times it runs.
"""

from typing import Any, Awaitable, Optional, Union
from uuid import UUID

import structlog

from expense_ledger.audit import AuditLogger, create_correlation_id
from expense_ledger.engine.reconciliation import BalanceReconciler, ReconciliationError
from expense_ledger.models.entry import (
    Entry,
    EntryFilter,
    EntryForm,
    LedgerSummary,
)
from expense_ledger.models.reconciliation import ReconciliationReport
from expense_ledger.queries import ViewFilter, summarize
from expense_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    StoreError,
)
from expense_ledger.validation import EntryValidationError, EntryValidator


logger = structlog.get_logger(__name__)


class LedgerSession:
    """
    The ledger view-model.

    Holds the reconciled view and runs every mutation through the same
    pipeline: validate, write, reconcile. `entries` only ever changes
    when a reconciliation pass succeeds.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        reconciler: Optional[BalanceReconciler] = None,
    ):
        self._store = store
        self._validator = validator or EntryValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._reconciler = reconciler or BalanceReconciler(store)
        self._view_filter = ViewFilter(store)

    @property
    def entries(self) -> tuple[Entry, ...]:
        """Reconciled entries in canonical order (last known good)."""
        return self._reconciler.view

    @property
    def last_report(self) -> Optional[ReconciliationReport]:
        return self._reconciler.last_report

    def get_entry(self, entry_id: int) -> Optional[Entry]:
        return self._reconciler.get_entry(entry_id)

    # ------------------------------------------------------------------
    # Mutating flows
    # ------------------------------------------------------------------

    async def load(self, correlation_id: Optional[UUID] = None) -> ReconciliationReport:
        """Initial load. Same as a reload."""
        return await self.reload(correlation_id)

    async def reload(self, correlation_id: Optional[UUID] = None) -> ReconciliationReport:
        """
        Re-read the whole ledger and reconcile it.

        Safe to call at any time; when nothing changed it writes nothing.
        """
        correlation_id = correlation_id or create_correlation_id()
        report = await self._reconcile(correlation_id)
        await self._audit_logger.log_ledger_reloaded(
            entry_count=len(report.entries),
            correlation_id=correlation_id,
        )
        return report

    async def add_entry(
        self,
        form: Union[EntryForm, dict],
        correlation_id: Optional[UUID] = None,
    ) -> Entry:
        """
        Validate and store a new entry, then reconcile.

        Returns:
            The new entry carrying its reconciled balance

        Raises:
            EntryValidationError: Input is invalid; nothing was written
            StoreError: The insert or the reconciliation failed
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            new_entry = self._validator.build_new_entry(form)
        except EntryValidationError as e:
            await self._audit_validation_failure(e, correlation_id)
            raise

        stored = await self._store_call(
            "insert",
            self._store.insert_entry(new_entry),
            correlation_id,
        )
        await self._audit_logger.log_entry_created(
            entry_id=stored.id,
            particulars=stored.particulars,
            amount=str(stored.amount),
            correlation_id=correlation_id,
        )

        await self._reconcile(correlation_id)
        return self.get_entry(stored.id) or stored

    async def update_entry(
        self,
        entry_id: int,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Entry]:
        """
        Apply field edits to one entry, then reconcile.

        Any field except id and balance may change. Returns the reconciled
        entry, or None if it vanished from the store in the meantime.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            fields = self._validator.build_changes(changes)
        except EntryValidationError as e:
            await self._audit_validation_failure(e, correlation_id, entry_id)
            raise

        await self._store_call(
            "update",
            self._store.update_entry_fields(entry_id, fields),
            correlation_id,
            entry_id=entry_id,
        )
        await self._audit_logger.log_entry_updated(
            entry_id=entry_id,
            changed_fields=sorted(fields),
            correlation_id=correlation_id,
        )

        await self._reconcile(correlation_id)
        return self.get_entry(entry_id)

    async def delete_entry(
        self,
        entry_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete one entry, then reconcile so later balances shift."""
        correlation_id = correlation_id or create_correlation_id()

        await self._store_call(
            "delete",
            self._store.delete_entry(entry_id),
            correlation_id,
            entry_id=entry_id,
        )
        await self._audit_logger.log_entry_deleted(
            entry_id=entry_id,
            correlation_id=correlation_id,
        )

        await self._reconcile(correlation_id)

    # ------------------------------------------------------------------
    # Read-only flows
    # ------------------------------------------------------------------

    async def filter_entries(
        self,
        entry_filter: Optional[EntryFilter] = None,
        pushdown: bool = False,
    ) -> list[Entry]:
        """
        Narrow the ledger for display.

        In memory by default; with pushdown=True the store evaluates the
        predicates. Never reconciles.
        """
        if pushdown:
            return await self._store_call(
                "list",
                self._view_filter.apply_pushdown(entry_filter),
                create_correlation_id(),
            )
        return self._view_filter.apply_in_memory(self.entries, entry_filter)

    def summary(self, entry_filter: Optional[EntryFilter] = None) -> LedgerSummary:
        """Totals over the (optionally filtered) reconciled view."""
        return summarize(self._view_filter.apply_in_memory(self.entries, entry_filter))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _store_call(
        self,
        operation: str,
        call: Awaitable,
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ):
        """Await a store call, turning any failure into a logged StoreError."""
        try:
            return await call
        except Exception as e:
            raise await self._store_failed(e, operation, correlation_id, entry_id)

    async def _store_failed(
        self,
        cause: Exception,
        operation: str,
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> StoreError:
        if isinstance(cause, StoreError):
            error = cause
        else:
            error = StoreError(
                f"Store {operation} failed: {cause}",
                operation=operation,
                entry_id=entry_id,
            )
            error.__cause__ = cause

        logger.error(
            "store_call_failed",
            operation=operation,
            entry_id=entry_id,
            error=str(error),
        )
        await self._audit_logger.log_store_error(
            operation=error.operation or operation,
            error_message=str(error),
            correlation_id=correlation_id,
            entry_id=error.entry_id if error.entry_id is not None else entry_id,
        )
        return error

    async def _reconcile(self, correlation_id: UUID) -> ReconciliationReport:
        try:
            report = await self._reconciler.reconcile()
        except ReconciliationError as e:
            await self._audit_logger.log_reconciliation_failed(
                report=e.report.to_log_dict(),
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            raise await self._store_failed(e, "reconcile", correlation_id)

        await self._audit_logger.log_reconciliation_completed(
            report=report.to_log_dict(),
            correlation_id=correlation_id,
        )
        return report

    async def _audit_validation_failure(
        self,
        error: EntryValidationError,
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> None:
        await self._audit_logger.log_validation_failed(
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.issues
            ],
            correlation_id=correlation_id,
            entry_id=entry_id,
        )


def create_session(use_storage: bool = True) -> LedgerSession:
    """
    Factory function to create a ready-to-load ledger session.

    Args:
        use_storage: Whether to use the Google Sheets backend.
                    Falls back to an in-memory ledger when it is not
                    configured or when False.

    Returns:
        A LedgerSession; call `await session.load()` before reading entries.
    """
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            return LedgerSession(
                store=GoogleSheetsLedgerStore(sheets_client),
                audit_logger=AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    return LedgerSession(store=InMemoryLedgerStore())
