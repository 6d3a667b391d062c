"""
Reconciliation Driver

Keeps the stored `balance` column in step with the balances the engine
derives, writing as little as possible.

One pass:
1. Read every entry from the store
2. Recompute balances in canonical order
3. Diff against the stored balances by id
4. Write only the stale ones, all at once, and wait for every write to settle
5. Re-read the store and publish that as the new view

DESIGN DECISION: The reconciler is the only writer of `balance`.
It never locks. Passes are idempotent and diff-driven, so running one
too many is free and running one after a race converges.

A failed write is not rolled back. The row simply stays stale and the
next pass picks it up again.
"""

import asyncio
from datetime import datetime
from typing import Iterable, Optional

import structlog

from expense_ledger.engine.balance import canonical_order, compute_balances
from expense_ledger.models.entry import BalanceUpdate, Entry
from expense_ledger.models.reconciliation import (
    PersistFailure,
    ReconciliationPlan,
    ReconciliationReport,
)
from expense_ledger.services.storage.interface import (
    LedgerStoreInterface,
    StoreError,
)


logger = structlog.get_logger(__name__)


class ReconciliationError(StoreError):
    """One or more balance writes failed during a pass."""

    def __init__(self, report: ReconciliationReport):
        failed_ids = [failure.entry_id for failure in report.failures]
        super().__init__(
            f"{len(failed_ids)} of {report.planned} balance updates failed "
            f"(entries {', '.join(str(i) for i in failed_ids)}). "
            "Their balances stay stale until the next reconciliation.",
            operation="reconcile",
            entry_id=failed_ids[0] if len(failed_ids) == 1 else None,
        )
        self.report = report
        self.failures = report.failures


def plan_reconciliation(previously_persisted: Iterable[Entry]) -> ReconciliationPlan:
    """
    Work out which stored balances are stale.

    Rows are matched by id, never by position. A row whose stored balance
    is missing counts as stale. Numerically equal balances (5.0 and 5.00)
    do not.
    """
    persisted = list(previously_persisted)
    stored_balances = {entry.id: entry.balance for entry in persisted}

    next_entries = compute_balances(persisted)
    to_persist = [
        BalanceUpdate(entry_id=entry.id, balance=entry.balance)
        for entry in next_entries
        if stored_balances.get(entry.id) != entry.balance
    ]

    return ReconciliationPlan(to_persist=to_persist, next=next_entries)


class BalanceReconciler:
    """
    Runs reconciliation passes against a ledger store and holds the
    resulting view.

    The view is a balance cache keyed by entry id, backed by the store.
    It is replaced wholesale after every successful pass and left alone
    after a failed one.

    Passes never overlap and are never abandoned. Asking for a pass while
    one is running queues exactly one more pass after it, however many
    times it is asked.
    """

    def __init__(self, store: LedgerStoreInterface):
        self._store = store
        self._view: tuple[Entry, ...] = ()
        self._by_id: dict[int, Entry] = {}
        self._dirty = False
        self._drain_task: Optional[asyncio.Future] = None
        self._last_report: Optional[ReconciliationReport] = None

    @property
    def view(self) -> tuple[Entry, ...]:
        """Last reconciled entries, in canonical order."""
        return self._view

    @property
    def last_report(self) -> Optional[ReconciliationReport]:
        return self._last_report

    @property
    def is_running(self) -> bool:
        return self._drain_task is not None

    def get_entry(self, entry_id: int) -> Optional[Entry]:
        return self._by_id.get(entry_id)

    async def reconcile(self) -> ReconciliationReport:
        """
        Request a pass and wait until the ledger has settled.

        Returns the report of the last pass that ran. Raises
        ReconciliationError when that pass left stale rows.
        """
        self._dirty = True
        if self._drain_task is None:
            self._drain_task = asyncio.ensure_future(self._drain())
        # Cancelling the caller must not cancel the pass.
        return await asyncio.shield(self._drain_task)

    async def _drain(self) -> ReconciliationReport:
        report: Optional[ReconciliationReport] = None
        error: Optional[StoreError] = None
        try:
            while self._dirty:
                self._dirty = False
                try:
                    report = await self._run_pass()
                    error = None
                except StoreError as e:
                    error = e
            if error is not None:
                raise error
            return report
        finally:
            self._drain_task = None

    async def _run_pass(self) -> ReconciliationReport:
        report = ReconciliationReport()

        persisted = await self._store.list_entries()
        plan = plan_reconciliation(persisted)
        report.planned = len(plan.to_persist)

        logger.info(
            "reconciliation_planned",
            pass_id=str(report.pass_id),
            entry_count=len(plan.next),
            stale=[update.entry_id for update in plan.to_persist],
        )

        if plan.is_noop:
            # What we just read is already authoritative.
            self._publish(plan.next)
            return self._finish(report)

        await self._persist(plan.to_persist, report)

        if report.failures:
            report.finished_at = datetime.utcnow()
            self._last_report = report
            logger.error("reconciliation_failed", **report.to_log_dict())
            raise ReconciliationError(report)

        refreshed = await self._store.list_entries()
        report.refreshed = True

        leftover = plan_reconciliation(refreshed)
        if not leftover.is_noop:
            logger.warning(
                "refreshed_view_stale",
                pass_id=str(report.pass_id),
                stale=[update.entry_id for update in leftover.to_persist],
            )

        self._publish(canonical_order(refreshed))
        return self._finish(report)

    async def _persist(
        self,
        updates: list[BalanceUpdate],
        report: ReconciliationReport,
    ) -> None:
        """Fire every balance write together and record how each one ended."""
        results = await asyncio.gather(
            *(
                self._store.update_entry_fields(update.entry_id, update.as_fields())
                for update in updates
            ),
            return_exceptions=True,
        )

        for update, result in zip(updates, results):
            if isinstance(result, Exception):
                logger.warning(
                    "balance_update_failed",
                    pass_id=str(report.pass_id),
                    entry_id=update.entry_id,
                    balance=str(update.balance),
                    error=str(result),
                )
                report.failures.append(
                    PersistFailure(entry_id=update.entry_id, message=str(result))
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                report.applied.append(update.entry_id)

    def _publish(self, entries: list[Entry]) -> None:
        self._view = tuple(entries)
        self._by_id = {entry.id: entry for entry in entries}

    def _finish(self, report: ReconciliationReport) -> ReconciliationReport:
        report.entries = list(self._view)
        report.finished_at = datetime.utcnow()
        self._last_report = report
        logger.info("reconciliation_completed", **report.to_log_dict())
        return report
