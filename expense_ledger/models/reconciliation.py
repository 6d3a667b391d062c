"""
Reconciliation Models

A reconciliation pass produces a plan (what must be written) and,
once the writes settle, a report (what actually happened).
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from expense_ledger.models.entry import BalanceUpdate, Entry


class ReconciliationPlan(BaseModel):
    """
    Pure output of the diff step.

    `next` is the full ledger in canonical order with fresh balances.
    `to_persist` lists only the rows whose stored balance is stale.
    """
    model_config = ConfigDict(frozen=True)

    to_persist: list[BalanceUpdate] = Field(default_factory=list)
    next: list[Entry] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_persist


class PersistFailure(BaseModel):
    """One balance write that did not go through."""
    model_config = ConfigDict(frozen=True)

    entry_id: int
    message: str


class ReconciliationReport(BaseModel):
    """What one reconciliation pass did."""

    pass_id: UUID = Field(default_factory=uuid4)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    planned: int = Field(
        default=0,
        ge=0,
        description="Number of balance writes the diff asked for"
    )
    applied: list[int] = Field(
        default_factory=list,
        description="Ids whose balance write succeeded"
    )
    failures: list[PersistFailure] = Field(default_factory=list)
    refreshed: bool = Field(
        default=False,
        description="Whether the view was re-read from the store after writing"
    )
    entries: list[Entry] = Field(
        default_factory=list,
        description="The published view (empty when the pass failed)"
    )

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def to_log_dict(self) -> dict:
        return {
            "pass_id": str(self.pass_id),
            "planned": self.planned,
            "applied": len(self.applied),
            "failed": [f.entry_id for f in self.failures],
            "refreshed": self.refreshed,
            "entry_count": len(self.entries),
        }
