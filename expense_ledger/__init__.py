"""
Expense Ledger - Source Package

A ledger view-model for a household expense book: an ordered list of
credits and debits, each carrying a running balance that is derived
locally and cached in a persistent store.

DESIGN PRINCIPLES:
1. Balances are derived, never typed in
2. Canonical order is (date, id), nothing else
3. Write only what changed
4. Every mutation is followed by a reconciliation pass
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Ledger Team"
