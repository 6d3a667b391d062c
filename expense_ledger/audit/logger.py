"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Complete traceability of entries and their balances
2. Debugging capability when a reconciliation pass fails
3. The user can see the history of their edits

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to tie an edit to the reconciliation it caused
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_ledger.models.audit import AuditEvent, AuditEventBuilder
from expense_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entry_created(
        self,
        entry_id: int,
        particulars: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_created(
            entry_id=entry_id,
            particulars=particulars,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_entry_updated(
        self,
        entry_id: int,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_updated(
            entry_id=entry_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_entry_deleted(
        self,
        entry_id: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_deleted(
            entry_id=entry_id,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            issues=issues,
            correlation_id=correlation_id,
            entry_id=entry_id,
        ))

    async def log_ledger_reloaded(
        self,
        entry_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_reloaded(
            entry_count=entry_count,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_completed(
        self,
        report: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_completed(
            report=report,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_failed(
        self,
        report: dict,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_failed(
            report=report,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
            entry_id=entry_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (add, edit, delete, reload).
    The reconciliation pass it triggers is logged under the same ID.
    """
    return uuid4()
