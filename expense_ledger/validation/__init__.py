"""Entry validation package."""

from expense_ledger.validation.validator import EntryValidationError, EntryValidator

__all__ = ["EntryValidationError", "EntryValidator"]
