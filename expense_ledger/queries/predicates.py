"""
Entry predicates shared by the in-memory view filter and the stores
that evaluate filters themselves, so both paths agree row for row.
"""

from typing import Iterable, Optional

from expense_ledger.models.entry import Entry, EntryFilter


def matches_filter(entry: Entry, entry_filter: Optional[EntryFilter]) -> bool:
    """True when the entry satisfies every predicate present in the filter."""
    if entry_filter is None:
        return True
    if entry_filter.date_from and entry.date < entry_filter.date_from:
        return False
    if entry_filter.date_to and entry.date > entry_filter.date_to:
        return False
    if entry_filter.type and entry.type != entry_filter.type:
        return False
    if entry_filter.particulars_contains:
        needle = entry_filter.particulars_contains.casefold()
        if needle not in entry.particulars.casefold():
            return False
    return True


def filter_entries(
    entries: Iterable[Entry],
    entry_filter: Optional[EntryFilter] = None,
) -> list[Entry]:
    """Keep matching entries, preserving their order. Balances are untouched."""
    return [entry for entry in entries if matches_filter(entry, entry_filter)]
