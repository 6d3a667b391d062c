"""
Audit Models for Expense Ledger

Every mutation of the ledger and every reconciliation pass is logged.
This provides:
1. Complete traceability of who changed what
2. Debugging information when a balance write fails
3. Ability to reconstruct how a balance came to be

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entry mutations
    ENTRY_CREATED = "entry_created"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    VALIDATION_FAILED = "validation_failed"

    # Reconciliation
    LEDGER_RELOADED = "ledger_reloaded"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_FAILED = "reconciliation_failed"

    # Storage
    STORE_ERROR = "store_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'entry', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties a mutation to the reconciliation pass it triggered"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_created(entry_id, particulars, amount, correlation_id)
        event = AuditEventBuilder.reconciliation_completed(report_dict, correlation_id)
    """

    @staticmethod
    def entry_created(
        entry_id: int,
        particulars: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            entity_type="entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Entry added: {particulars} - {amount}",
            details={
                "particulars": particulars,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_updated(
        entry_id: int,
        changed_fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Entry {entry_id} updated: {', '.join(changed_fields)}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        entry_id: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Entry {entry_id} deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="entry",
            entity_id=str(entry_id) if entry_id is not None else None,
            correlation_id=correlation_id,
            description=f"Entry rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def ledger_reloaded(
        entry_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RELOADED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger reloaded with {entry_count} entries",
            details={"entry_count": entry_count},
        )

    @staticmethod
    def reconciliation_completed(
        report: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Balances reconciled: {report.get('applied', 0)} rows written",
            details=report,
        )

    @staticmethod
    def reconciliation_failed(
        report: dict,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            correlation_id=correlation_id,
            description="Balance reconciliation left stale rows",
            details=report,
            error_message=error_message,
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        correlation_id: UUID,
        entry_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="entry" if entry_id is not None else None,
            entity_id=str(entry_id) if entry_id is not None else None,
            correlation_id=correlation_id,
            description=f"Store operation failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
