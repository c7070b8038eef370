"""Tests for single-transaction create / update / delete."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ledger_engine.models.audit import AuditEventType
from ledger_engine.models.ledger import TransactionType
from ledger_engine.services.storage import (
    DuplicateError,
    NotFoundError,
    TransactionKeyConflictError,
)
from ledger_engine.validation import TransactionValidationError, UnknownAccountError

USER_ID = "user-1"


async def create_lunch(flow, **overrides):
    fields = {
        "user_id": USER_ID,
        "type": TransactionType.EXPENSE,
        "amount": Decimal("12.00"),
        "date": date(2024, 1, 5),
        "from_account_id": "chk",
        "description": "Lunch",
    }
    fields.update(overrides)
    return await flow.create_transaction(**fields)


class TestCreateTransaction:
    """Tests for TransactionFlow.create_transaction."""

    @pytest.mark.asyncio
    async def test_create(self, transaction_flow, store, audit_storage):
        """Test a transaction is stored with its key and audited."""
        txn = await create_lunch(transaction_flow)

        assert txn.transaction_key == txn.computed_key()
        assert await store.get_transaction(USER_ID, txn.id) == txn
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_CREATED

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, transaction_flow):
        """Test the same date, amount and description can't be entered twice."""
        await create_lunch(transaction_flow)
        with pytest.raises(DuplicateError):
            await create_lunch(transaction_flow, description="  LUNCH", category="Food")

    @pytest.mark.asyncio
    async def test_needs_an_account(self, transaction_flow):
        """Test at least one side is required."""
        with pytest.raises(TransactionValidationError):
            await create_lunch(transaction_flow, from_account_id=None)

    @pytest.mark.asyncio
    async def test_foreign_account_rejected(self, transaction_flow):
        """Test another user's account can't be referenced."""
        with pytest.raises(UnknownAccountError) as exc_info:
            await create_lunch(transaction_flow, to_account_id="other")
        assert exc_info.value.missing_ids == ["other"]

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, transaction_flow):
        """Test amounts are magnitudes."""
        with pytest.raises(ValidationError):
            await create_lunch(transaction_flow, amount=Decimal("-1"))


class TestUpdateTransaction:
    """Tests for TransactionFlow.update_transaction."""

    @pytest.mark.asyncio
    async def test_key_recomputed(self, transaction_flow, store):
        """Test changing the amount moves the key."""
        txn = await create_lunch(transaction_flow)
        updated = await transaction_flow.update_transaction(USER_ID, txn.id, amount=Decimal("15.00"))

        assert updated.amount == Decimal("15.00")
        assert updated.transaction_key == updated.computed_key()
        assert updated.transaction_key != txn.transaction_key
        assert await store.find_transaction_by_key(USER_ID, txn.transaction_key) is None
        assert (await store.find_transaction_by_key(USER_ID, updated.transaction_key)).id == txn.id

    @pytest.mark.asyncio
    async def test_non_key_field_keeps_key(self, transaction_flow, audit_storage):
        """Test editing the category leaves the key alone."""
        txn = await create_lunch(transaction_flow)
        updated = await transaction_flow.update_transaction(USER_ID, txn.id, category="Food")

        assert updated.category == "Food"
        assert updated.transaction_key == txn.transaction_key
        assert updated.sequence == txn.sequence
        assert audit_storage.events[-1].details["changed_fields"] == ["category"]

    @pytest.mark.asyncio
    async def test_conflict(self, transaction_flow, audit_storage):
        """Test an edit that collides with another transaction is refused."""
        lunch = await create_lunch(transaction_flow)
        dinner = await create_lunch(transaction_flow, description="Dinner")

        with pytest.raises(TransactionKeyConflictError) as exc_info:
            await transaction_flow.update_transaction(USER_ID, dinner.id, description="lunch")

        assert exc_info.value.conflicting_id == lunch.id
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_KEY_CONFLICT

    @pytest.mark.asyncio
    async def test_missing(self, transaction_flow):
        """Test updating an unknown transaction is NotFound, not a conflict."""
        with pytest.raises(NotFoundError):
            await transaction_flow.update_transaction(USER_ID, "missing", amount=Decimal("1"))

    @pytest.mark.asyncio
    async def test_other_users_transaction_is_missing(self, transaction_flow):
        """Test users can't edit each other's transactions."""
        txn = await create_lunch(transaction_flow)
        with pytest.raises(NotFoundError):
            await transaction_flow.update_transaction("user-2", txn.id, amount=Decimal("1"))

    @pytest.mark.asyncio
    async def test_read_only_fields(self, transaction_flow):
        """Test ownership and identity can't be edited."""
        txn = await create_lunch(transaction_flow)
        with pytest.raises(TransactionValidationError, match="user_id"):
            await transaction_flow.update_transaction(USER_ID, txn.id, user_id="user-2")


class TestDeleteTransaction:
    """Tests for TransactionFlow.delete_transaction."""

    @pytest.mark.asyncio
    async def test_delete(self, transaction_flow, store, audit_storage):
        """Test delete removes once and frees the key."""
        txn = await create_lunch(transaction_flow)

        assert await transaction_flow.delete_transaction(USER_ID, txn.id) is True
        assert await transaction_flow.delete_transaction(USER_ID, txn.id) is False
        assert await store.find_transaction_by_key(USER_ID, txn.transaction_key) is None
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_DELETED

        # Same entry can be recorded again
        await create_lunch(transaction_flow)
