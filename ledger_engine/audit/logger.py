"""
Audit Logger

DESIGN DECISION: Every import and every ledger edit is logged.
This provides:
1. Complete traceability of who changed what
2. An explanation for every opening-balance adjustment
3. Debugging capability when a replayed balance looks wrong

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the events of one import
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_engine.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_engine.services.storage import AuditStorageInterface


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
    2. An audit store (for persistence and user visibility)
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
        self._logger = structlog.get_logger("ledger_engine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_import_received(
        self,
        user_id: str,
        row_count: int,
        target_account_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log receipt of a parsed CSV import."""
        await self.log(AuditEventBuilder.import_received(
            user_id=user_id,
            row_count=row_count,
            target_account_id=target_account_id,
            correlation_id=correlation_id,
        ))

    async def log_import_rejected(
        self,
        user_id: str,
        reason: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log an import rejected before touching the ledger."""
        await self.log(AuditEventBuilder.import_rejected(
            user_id=user_id,
            reason=reason,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_duplicates_skipped(
        self,
        user_id: str,
        count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.duplicates_skipped(
            user_id=user_id,
            count=count,
            correlation_id=correlation_id,
        ))

    async def log_transactions_imported(
        self,
        user_id: str,
        imported: int,
        attempted: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        """Log the bulk insert outcome, flagging partial inserts."""
        if failed:
            await self.log(AuditEventBuilder.partial_insert(
                user_id=user_id,
                inserted=imported,
                failed=failed,
                correlation_id=correlation_id,
            ))
        await self.log(AuditEventBuilder.transactions_imported(
            user_id=user_id,
            imported=imported,
            attempted=attempted,
            correlation_id=correlation_id,
        ))

    async def log_balance_adjusted(
        self,
        user_id: str,
        account_id: str,
        delta: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_balance_adjusted(
            user_id=user_id,
            account_id=account_id,
            delta=delta,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_key_conflict(
        self,
        user_id: str,
        transaction_id: str,
        conflicting_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_key_conflict(
            user_id=user_id,
            transaction_id=transaction_id,
            conflicting_id=conflicting_id,
            correlation_id=correlation_id,
        ))

    async def log_balance_computed(
        self,
        user_id: str,
        account_count: int,
        as_of: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_computed(
            user_id=user_id,
            account_count=account_count,
            as_of=as_of,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger store failure."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a CSV import).
    Pass it through all subsequent operations.
    """
    return uuid4()
