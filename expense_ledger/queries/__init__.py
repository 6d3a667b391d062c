"""Read-side filtering package."""

from expense_ledger.queries.predicates import filter_entries, matches_filter
from expense_ledger.queries.view_filter import ViewFilter, summarize

__all__ = ["ViewFilter", "filter_entries", "matches_filter", "summarize"]
