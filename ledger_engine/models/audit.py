"""
Audit Models for Ledger Engine

Every significant ledger action is logged for audit purposes.
This provides:
1. Complete traceability of imports and edits
2. Debugging information when a balance looks wrong
3. Ability to reconstruct who changed an opening balance and why

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the import pipeline has its own event type.
    """
    # CSV import
    IMPORT_RECEIVED = "import_received"
    IMPORT_REJECTED = "import_rejected"
    DUPLICATES_SKIPPED = "duplicates_skipped"
    TRANSACTIONS_IMPORTED = "transactions_imported"
    PARTIAL_INSERT = "partial_insert"
    ACCOUNT_BALANCE_ADJUSTED = "account_balance_adjusted"

    # Single transaction edits
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_KEY_CONFLICT = "transaction_key_conflict"

    # Queries
    BALANCE_COMPUTED = "balance_computed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


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
    Every significant action creates one of these.
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
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the ledger the event touched"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'import', 'transaction', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
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
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
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
        event = AuditEventBuilder.import_received(user_id, row_count, ...)
        event = AuditEventBuilder.transaction_updated(user_id, txn_id, ...)
    """

    @staticmethod
    def import_received(
        user_id: str,
        row_count: int,
        target_account_id: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_RECEIVED,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"CSV import received with {row_count} parsed rows",
            details={
                "row_count": row_count,
                "target_account_id": target_account_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        user_id: str,
        reason: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"CSV import rejected: {reason}",
            details=details or {},
            error_message=reason,
        )

    @staticmethod
    def duplicates_skipped(
        user_id: str,
        count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATES_SKIPPED,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Skipped {count} duplicate rows",
            details={"duplicates_skipped": count},
        )

    @staticmethod
    def transactions_imported(
        user_id: str,
        imported: int,
        attempted: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_IMPORTED,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Imported {imported} of {attempted} rows",
            details={
                "imported": imported,
                "attempted": attempted,
            },
        )

    @staticmethod
    def partial_insert(
        user_id: str,
        inserted: int,
        failed: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_INSERT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Bulk insert kept {inserted} rows, store refused {failed}",
            details={
                "inserted": inserted,
                "failed": failed,
            },
        )

    @staticmethod
    def account_balance_adjusted(
        user_id: str,
        account_id: str,
        delta: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_BALANCE_ADJUSTED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Opening balance adjusted by {delta}",
            details={"delta": delta},
        )

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction created",
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({', '.join(changed_fields) or 'no changes'})",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def transaction_key_conflict(
        user_id: str,
        transaction_id: str,
        conflicting_id: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_KEY_CONFLICT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Another transaction with the same key already exists",
            details={"conflicting_id": conflicting_id},
        )

    @staticmethod
    def balance_computed(
        user_id: str,
        account_count: int,
        as_of: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_COMPUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Replayed balances for {account_count} accounts",
            details={
                "account_count": account_count,
                "as_of": as_of,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Ledger store error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
