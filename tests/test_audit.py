"""Tests for the audit logger."""

import pytest

from ledger_engine.audit import AuditLogger, create_correlation_id
from ledger_engine.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from ledger_engine.services.storage import InMemoryAuditStorage, StorageError


class BrokenAuditStorage(InMemoryAuditStorage):
    """Audit store whose writes always fail."""

    async def append_event(self, event):
        raise StorageError("sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_persists_events(self):
        """Test events reach the configured storage."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_transaction_created(user_id="u", transaction_id="t1")

        assert [e.event_type for e in storage.events] == [AuditEventType.TRANSACTION_CREATED]

    @pytest.mark.asyncio
    async def test_local_only(self):
        """Test logging without storage still succeeds."""
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.transaction_deleted("u", "t1")) is True

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        """Test a failing audit store never breaks the caller."""
        logger = AuditLogger(BrokenAuditStorage())
        assert await logger.log(AuditEventBuilder.transaction_deleted("u", "t1")) is False

    @pytest.mark.asyncio
    async def test_partial_insert_flagged(self):
        """Test a bulk insert with refusals logs a warning first."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_transactions_imported(
            user_id="u",
            imported=2,
            attempted=3,
            failed=1,
            correlation_id=create_correlation_id(),
        )

        events = storage.events
        assert [e.event_type for e in events] == [
            AuditEventType.PARTIAL_INSERT,
            AuditEventType.TRANSACTIONS_IMPORTED,
        ]
        assert events[0].severity == AuditSeverity.WARNING

    @pytest.mark.asyncio
    async def test_errors(self):
        """Test storage and system errors are logged at error severity."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_storage_error(operation="insert_transactions", error_message="timeout")
        await logger.log_error(error_type="ValueError", error_message="bad", details={"row": 3})

        assert [e.event_type for e in storage.events] == [
            AuditEventType.STORAGE_ERROR,
            AuditEventType.SYSTEM_ERROR,
        ]
        assert all(e.severity == AuditSeverity.ERROR for e in storage.events)

    @pytest.mark.asyncio
    async def test_events_by_entity(self):
        """Test an entity's history can be read back in order."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_transaction_created(user_id="u", transaction_id="t1")
        await logger.log_transaction_updated(user_id="u", transaction_id="t1", changed_fields=["amount"])
        await logger.log_transaction_created(user_id="u", transaction_id="t2")

        history = await storage.get_events_by_entity("transaction", "t1")
        assert [e.event_type for e in history] == [
            AuditEventType.TRANSACTION_CREATED,
            AuditEventType.TRANSACTION_UPDATED,
        ]

    def test_correlation_ids_unique(self):
        """Test each call yields a fresh id."""
        assert create_correlation_id() != create_correlation_id()
