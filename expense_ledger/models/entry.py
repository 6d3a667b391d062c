"""
Core Data Models for Expense Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Keep money in Decimal from the first keystroke to the stored cell
3. Be serializable for storage and logging

DESIGN DECISION: Entry is frozen. A reconciled list is replaced wholesale,
never patched in place, so nobody can observe a half-updated balance.
"""

from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")
PARTICULARS_MAX_LENGTH = 500
COMMENTS_MAX_LENGTH = 1000
# Running totals must stay inside the 28-digit default Decimal context
AMOUNT_MAX_DIGITS = 15


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryType(str, Enum):
    """
    Direction of an entry.

    Credits add to the running balance, debits subtract from it.
    The values are the labels stored in the backing sheet.
    """
    CREDIT = "Credit"
    DEBIT = "Debit"


# =============================================================================
# CORE ENTRY MODELS
# =============================================================================

class NewEntry(BaseModel):
    """
    A validated entry that has not been stored yet.

    No id (the store assigns it) and no balance (the engine derives it).
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    date: date_type = Field(
        ...,
        description="Calendar date of the entry"
    )
    particulars: str = Field(
        ...,
        min_length=1,
        max_length=PARTICULARS_MAX_LENGTH,
        description="What the money was for"
    )
    type: EntryType = Field(
        default=EntryType.CREDIT,
        description="Credit or Debit"
    )
    comments: str = Field(
        default="",
        max_length=COMMENTS_MAX_LENGTH,
        description="Free-text notes"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=2,
        description="Non-negative amount with at most two fraction digits"
    )

    @field_validator('amount')
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        """Amounts are always held with exactly two fraction digits."""
        return v.quantize(CENT)

    def entry_fields(self) -> dict[str, Any]:
        """The user-supplied fields only, without id or balance."""
        return self.model_dump(include=set(NewEntry.model_fields))


class Entry(NewEntry):
    """
    A stored ledger entry.

    `balance` is None until the first reconciliation pass writes it.
    """

    id: int = Field(
        ...,
        gt=0,
        description="Store-assigned identifier, never reused"
    )
    balance: Optional[Decimal] = Field(
        default=None,
        decimal_places=2,
        description="Running balance up to and including this entry"
    )

    @field_validator('balance')
    @classmethod
    def quantize_balance(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return None
        return v.quantize(CENT)

    def with_balance(self, balance: Decimal) -> "Entry":
        """Return a copy carrying a freshly computed balance."""
        return self.model_copy(update={"balance": balance.quantize(CENT)})

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "type": self.type.value,
            "amount": str(self.amount),
            "balance": str(self.balance) if self.balance is not None else None,
        }


class EntryForm(BaseModel):
    """
    Raw input as a form submits it.

    Nothing here is trusted: the amount is free text and any field
    may be missing. The validator turns this into a NewEntry.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    date: Optional[Union[date_type, str]] = None
    particulars: Optional[str] = None
    type: Optional[Union[EntryType, str]] = None
    comments: Optional[str] = None
    amount: Optional[Union[str, int, float, Decimal]] = None


class BalanceUpdate(BaseModel):
    """A single balance write emitted by reconciliation."""
    model_config = ConfigDict(frozen=True)

    entry_id: int
    balance: Decimal

    def as_fields(self) -> dict[str, Any]:
        """Partial field set for update_entry_fields."""
        return {"balance": self.balance}


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'truncated')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Outcome of checking one form or one set of field changes."""

    is_valid: bool = Field(
        ...,
        description="True when there are no error-level issues"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# QUERY MODELS
# =============================================================================

class EntryFilter(BaseModel):
    """
    Read-only predicates over the ledger.

    Every predicate is optional and all present ones are ANDed.
    An empty filter matches everything.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    date_from: Optional[date_type] = Field(
        default=None,
        description="Entries on or after this date"
    )
    date_to: Optional[date_type] = Field(
        default=None,
        description="Entries on or before this date"
    )
    type: Optional[EntryType] = None
    particulars_contains: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of particulars"
    )

    @field_validator('particulars_contains')
    @classmethod
    def blank_search_is_no_search(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode='after')
    def validate_range(self) -> 'EntryFilter':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self

    @property
    def is_empty(self) -> bool:
        return (
            self.date_from is None
            and self.date_to is None
            and self.type is None
            and self.particulars_contains is None
        )


class LedgerSummary(BaseModel):
    """Totals over a (possibly filtered) list of entries."""

    entry_count: int = Field(ge=0)
    total_credits: Decimal = Decimal("0.00")
    total_debits: Decimal = Decimal("0.00")

    @property
    def net(self) -> Decimal:
        return self.total_credits - self.total_debits
