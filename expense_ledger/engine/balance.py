"""
Ordering & Balance Engine

Puts entries into canonical order and derives the running balance of
each one in a single pass.

Canonical order is (date ascending, id ascending). Creation time is not
tracked, so the store-assigned id is the only stable tie-break for
entries sharing a date.

All arithmetic is Decimal at cent resolution. Ten credits of 0.10
add up to exactly 1.00.
"""

from decimal import Decimal
from typing import Iterable

from expense_ledger.models.entry import CENT, Entry, EntryType


ZERO = Decimal("0.00")


def canonical_key(entry: Entry) -> tuple:
    return (entry.date, entry.id)


def canonical_order(entries: Iterable[Entry]) -> list[Entry]:
    """Sort entries by date, then id. Input order never matters."""
    return sorted(entries, key=canonical_key)


def signed_amount(entry: Entry) -> Decimal:
    """+amount for a credit, -amount for a debit."""
    if entry.type == EntryType.DEBIT:
        return -entry.amount
    return entry.amount


def compute_balances(entries: Iterable[Entry]) -> list[Entry]:
    """
    Return the entries in canonical order, each with a fresh running balance.

    Pure: the result depends only on the (date, id, type, amount) of the
    input, never on its order or on balances it already carries.
    """
    running = ZERO
    balanced: list[Entry] = []

    for entry in canonical_order(entries):
        running = (running + signed_amount(entry)).quantize(CENT)
        balanced.append(entry.with_balance(running))

    return balanced
