"""
Data Models Package

This package contains all Pydantic models used in the Expense Ledger system.
All data flowing through the system must conform to these schemas.
"""

from expense_ledger.models.entry import (
    BalanceUpdate,
    Entry,
    EntryFilter,
    EntryForm,
    EntryType,
    LedgerSummary,
    NewEntry,
    ValidationIssue,
    ValidationResult,
)
from expense_ledger.models.reconciliation import (
    PersistFailure,
    ReconciliationPlan,
    ReconciliationReport,
)
from expense_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entry models
    "BalanceUpdate",
    "Entry",
    "EntryFilter",
    "EntryForm",
    "EntryType",
    "LedgerSummary",
    "NewEntry",
    "ValidationIssue",
    "ValidationResult",
    # Reconciliation models
    "PersistFailure",
    "ReconciliationPlan",
    "ReconciliationReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
