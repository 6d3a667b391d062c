"""
View Filter

DESIGN DECISION: Filtering is READ-ONLY.
It narrows what the presentation layer shows; it never touches a
balance and never starts a reconciliation pass. A filtered row keeps
the running balance it has in the full ledger.

Two ways to filter, same answer:
- in memory, over the last reconciled view
- pushed down to the store as a read-side query, then put in canonical order
"""

from typing import Iterable, Optional

from expense_ledger.engine.balance import canonical_order
from expense_ledger.models.entry import (
    Entry,
    EntryFilter,
    EntryType,
    LedgerSummary,
)
from expense_ledger.queries.predicates import filter_entries
from expense_ledger.services.storage.interface import LedgerStoreInterface


class ViewFilter:
    """
    Applies an EntryFilter either to a reconciled view or to the store.

    GUARANTEES:
    - Only returns real rows
    - Never changes a balance
    - An empty filter returns the view unchanged
    """

    def __init__(self, store: Optional[LedgerStoreInterface] = None):
        self._store = store

    def apply_in_memory(
        self,
        entries: Iterable[Entry],
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[Entry]:
        return filter_entries(entries, entry_filter)

    async def apply_pushdown(
        self,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[Entry]:
        """Let the store evaluate the predicates, then restore canonical order."""
        if self._store is None:
            raise ValueError("No store configured for filter pushdown")
        rows = await self._store.list_entries(entry_filter)
        return canonical_order(rows)

    async def apply(
        self,
        entries: Iterable[Entry],
        entry_filter: Optional[EntryFilter] = None,
        pushdown: bool = False,
    ) -> list[Entry]:
        if pushdown:
            return await self.apply_pushdown(entry_filter)
        return self.apply_in_memory(entries, entry_filter)


def summarize(entries: Iterable[Entry]) -> LedgerSummary:
    """Credit and debit totals over the given rows."""
    summary = LedgerSummary(entry_count=0)

    for entry in entries:
        summary.entry_count += 1
        if entry.type == EntryType.CREDIT:
            summary.total_credits += entry.amount
        else:
            summary.total_debits += entry.amount

    return summary
