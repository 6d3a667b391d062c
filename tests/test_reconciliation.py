"""
Tests for the reconciliation driver.

Covers the diff (minimal writes, matched by id), partial failure,
deletion, and how overlapping requests are coalesced.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.engine.reconciliation import (
    BalanceReconciler,
    ReconciliationError,
    plan_reconciliation,
)
from expense_ledger.models.entry import EntryType
from expense_ledger.services.storage import StoreError

from tests.conftest import GatedStore, RecordingStore, make_entry


def day(n: int) -> date:
    return date(2024, 3, n)


class TestPlanReconciliation:
    """The pure diff step."""

    def test_fresh_ledger_writes_everything(self):
        """Rows without a stored balance are all stale."""
        plan = plan_reconciliation([make_entry(1, "10"), make_entry(2, "5")])
        assert [u.entry_id for u in plan.to_persist] == [1, 2]
        assert [u.balance for u in plan.to_persist] == [Decimal("10.00"), Decimal("15.00")]

    def test_consistent_ledger_is_noop(self):
        plan = plan_reconciliation([
            make_entry(1, "10", balance="10"),
            make_entry(2, "5", EntryType.DEBIT, balance="5"),
        ])
        assert plan.is_noop
        assert [e.balance for e in plan.next] == [Decimal("10.00"), Decimal("5.00")]

    def test_matched_by_id_not_position(self):
        """Store order does not decide which rows are stale."""
        plan = plan_reconciliation([
            make_entry(2, "5", on=day(2), balance="15"),
            make_entry(1, "10", on=day(1), balance="10"),
        ])
        assert plan.is_noop

    def test_numerically_equal_is_not_stale(self):
        """5.0 stored against 5.00 computed needs no write."""
        entry = make_entry(1, "5").model_copy(update={"balance": Decimal("5.0")})
        assert plan_reconciliation([entry]).is_noop

    def test_only_suffix_after_edit(self):
        """Changing one amount restales that row and everything after it."""
        entries = [
            make_entry(1, "10", on=day(1), balance="10"),
            make_entry(2, "20", on=day(2), balance="30"),
            make_entry(3, "30", on=day(3), balance="60"),
            make_entry(4, "40", on=day(4), balance="100"),
        ]
        entries[1] = entries[1].model_copy(update={"amount": Decimal("25.00")})
        plan = plan_reconciliation(entries)
        assert [u.entry_id for u in plan.to_persist] == [2, 3, 4]

    def test_empty_ledger(self):
        plan = plan_reconciliation([])
        assert plan.is_noop
        assert plan.next == []


class TestBalanceReconciler:
    """Running passes against a store."""

    @pytest.mark.asyncio
    async def test_first_pass_persists_and_publishes(self):
        store = RecordingStore([make_entry(1, "100", on=day(1)), make_entry(2, "40", EntryType.DEBIT, on=day(2))])
        reconciler = BalanceReconciler(store)

        report = await reconciler.reconcile()

        assert report.succeeded
        assert report.planned == 2
        assert report.refreshed
        assert [e.balance for e in reconciler.view] == [Decimal("100.00"), Decimal("60.00")]
        assert store.stored(2).balance == Decimal("60.00")

    @pytest.mark.asyncio
    async def test_second_pass_writes_nothing(self):
        """A settled ledger reconciles with zero writes and a single read."""
        store = RecordingStore([make_entry(1, "10"), make_entry(2, "20")])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()
        store.updates.clear()
        store.list_calls = 0

        report = await reconciler.reconcile()

        assert report.planned == 0
        assert store.updates == []
        assert store.list_calls == 1
        assert not report.refreshed

    @pytest.mark.asyncio
    async def test_edit_writes_only_stale_rows(self):
        store = RecordingStore([make_entry(i, "10", on=day(i)) for i in range(1, 6)])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()
        store.updates.clear()

        await store.update_entry_fields(4, {"amount": Decimal("15.00")})
        store.updates.clear()
        report = await reconciler.reconcile()

        assert sorted(entry_id for entry_id, _ in store.updates) == [4, 5]
        assert report.planned == 2
        assert reconciler.get_entry(5).balance == Decimal("55.00")

    @pytest.mark.asyncio
    async def test_deletion_shifts_later_balances(self):
        store = RecordingStore([make_entry(i, "10", on=day(i)) for i in range(1, 4)])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()

        await store.delete_entry(1)
        await reconciler.reconcile()

        assert [e.id for e in reconciler.view] == [2, 3]
        assert [e.balance for e in reconciler.view] == [Decimal("10.00"), Decimal("20.00")]
        assert store.stored(3).balance == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_same_date_ordered_by_id(self):
        """Ties on date are broken by id, whatever order the store returns."""
        store = RecordingStore([
            make_entry(3, "1", on=day(1)),
            make_entry(1, "100", on=day(1)),
            make_entry(2, "10", on=day(1)),
        ])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()

        assert [(e.id, e.balance) for e in reconciler.view] == [
            (1, Decimal("100.00")),
            (2, Decimal("110.00")),
            (3, Decimal("111.00")),
        ]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_last_good_view(self):
        """Failed writes raise, keep the old view, and are retried next pass."""
        store = RecordingStore([make_entry(i, "10", on=day(i)) for i in range(1, 4)])
        reconciler = BalanceReconciler(store)
        store.fail_balance_for = {2}

        with pytest.raises(ReconciliationError) as exc_info:
            await reconciler.reconcile()

        error = exc_info.value
        assert [f.entry_id for f in error.failures] == [2]
        assert error.entry_id == 2
        assert isinstance(error, StoreError)
        assert reconciler.view == ()
        # Other writes went through and are not rolled back
        assert store.stored(1).balance == Decimal("10.00")
        assert store.stored(3).balance == Decimal("30.00")
        assert store.stored(2).balance is None

        store.fail_balance_for = set()
        store.updates.clear()
        report = await reconciler.reconcile()

        assert report.planned == 1
        assert [entry_id for entry_id, _ in store.updates] == [2]
        assert [e.balance for e in reconciler.view] == [Decimal("10.00"), Decimal("20.00"), Decimal("30.00")]

    @pytest.mark.asyncio
    async def test_failed_read_keeps_view(self):
        store = RecordingStore([make_entry(1, "10")])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()
        good_view = reconciler.view

        async def broken_list(entry_filter=None):
            raise StoreError("offline", operation="list")

        store.list_entries = broken_list

        with pytest.raises(StoreError):
            await reconciler.reconcile()
        assert reconciler.view is good_view
        assert not reconciler.is_running

    @pytest.mark.asyncio
    async def test_view_is_replaced_not_mutated(self):
        store = RecordingStore([make_entry(1, "10")])
        reconciler = BalanceReconciler(store)
        await reconciler.reconcile()
        before = reconciler.view

        await store.insert_entry(make_entry(99, "5"))
        await reconciler.reconcile()

        assert len(before) == 1
        assert len(reconciler.view) == 2


class TestPassCoalescing:
    """Overlapping requests while a pass runs."""

    @pytest.mark.asyncio
    async def test_requests_during_a_pass_queue_one_more(self):
        store = GatedStore([make_entry(1, "10", balance="10")])
        reconciler = BalanceReconciler(store)

        first = asyncio.create_task(reconciler.reconcile())
        await store.entered.wait()

        second = asyncio.create_task(reconciler.reconcile())
        third = asyncio.create_task(reconciler.reconcile())
        await asyncio.sleep(0)
        assert reconciler.is_running

        store.gate.set()
        reports = await asyncio.gather(first, second, third)

        # The running pass plus exactly one follow-up
        assert store.list_calls == 2
        assert reports[0] is reports[1] is reports[2]
        assert not reconciler.is_running

    @pytest.mark.asyncio
    async def test_follow_up_pass_sees_concurrent_mutation(self):
        """A write landing mid-pass is reconciled before the callers resume."""
        store = GatedStore([make_entry(1, "10")])
        reconciler = BalanceReconciler(store)

        first = asyncio.create_task(reconciler.reconcile())
        await store.entered.wait()

        await store.insert_entry(make_entry(1, "5"))
        second = asyncio.create_task(reconciler.reconcile())
        await asyncio.sleep(0)

        store.gate.set()
        await asyncio.gather(first, second)

        assert [e.balance for e in reconciler.view] == [Decimal("10.00"), Decimal("15.00")]

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_pass(self):
        store = GatedStore([make_entry(1, "10"), make_entry(2, "5")])
        reconciler = BalanceReconciler(store)

        caller = asyncio.create_task(reconciler.reconcile())
        await store.entered.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        store.gate.set()
        report = await reconciler.reconcile()

        assert report.succeeded
        assert store.stored(2).balance == Decimal("15.00")
