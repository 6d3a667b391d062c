"""Balance engine package: normalization, ordering, reconciliation."""

from expense_ledger.engine.normalizer import (
    normalize_amount,
    parse_amount,
    was_truncated,
)
from expense_ledger.engine.balance import (
    canonical_order,
    compute_balances,
    signed_amount,
)
from expense_ledger.engine.reconciliation import (
    BalanceReconciler,
    ReconciliationError,
    plan_reconciliation,
)

__all__ = [
    "BalanceReconciler",
    "ReconciliationError",
    "canonical_order",
    "compute_balances",
    "normalize_amount",
    "parse_amount",
    "plan_reconciliation",
    "signed_amount",
    "was_truncated",
]
