"""
Tests for the ledger store implementations.

Google Sheets tests use a mocked client; no real API calls.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from ledger_engine.models.ledger import (
    Account,
    AccountType,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.services.storage import (
    DuplicateError,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    NotFoundError,
    StorageError,
)
from ledger_engine.services.storage.google_sheets import OPENING_BALANCE_COLUMN

USER_ID = "user-1"


def make_transaction(**overrides) -> Transaction:
    fields = {
        "user_id": USER_ID,
        "type": TransactionType.EXPENSE,
        "from_account_id": "chk",
        "amount": Decimal("10.00"),
        "date": date(2024, 1, 1),
        "description": "Coffee",
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestInMemoryLedgerStore:
    """Tests for InMemoryLedgerStore."""

    @pytest.mark.asyncio
    async def test_key_filled_and_sequence_assigned(self):
        """Test inserts get a key and increasing sequence numbers."""
        store = InMemoryLedgerStore()
        first = await store.insert_transaction(make_transaction())
        second = await store.insert_transaction(make_transaction(description="Tea"))

        assert first.transaction_key == first.computed_key()
        assert second.sequence > first.sequence

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self):
        """Test the (user, key) pair is unique."""
        store = InMemoryLedgerStore()
        await store.insert_transaction(make_transaction())
        with pytest.raises(DuplicateError):
            await store.insert_transaction(make_transaction(type=TransactionType.TRANSFER))

    @pytest.mark.asyncio
    async def test_bulk_insert_continues_past_conflicts(self):
        """Test an unordered bulk insert keeps going after a collision."""
        store = InMemoryLedgerStore()
        await store.insert_transaction(make_transaction(description="Taken"))

        result = await store.insert_transactions([
            make_transaction(description="A"),
            make_transaction(description="Taken"),
            make_transaction(description="B"),
        ])

        assert result.inserted_count == 2
        assert result.failed == 1
        assert len(await store.find_transactions(USER_ID)) == 3

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        """Test callers can't mutate stored state."""
        store = InMemoryLedgerStore()
        txn = await store.insert_transaction(make_transaction())
        txn.metadata["tampered"] = True

        stored = await store.get_transaction(USER_ID, txn.id)
        assert stored.metadata == {}

    @pytest.mark.asyncio
    async def test_narrowed_lookup(self):
        """Test date_in and amount_in narrow the existence query."""
        store = InMemoryLedgerStore(transactions=[
            make_transaction(date=date(2024, 1, 1), amount=Decimal("5")),
            make_transaction(date=date(2024, 1, 2), amount=Decimal("5")),
            make_transaction(date=date(2024, 1, 1), amount=Decimal("7")),
        ])

        found = await store.find_transactions(
            USER_ID,
            TransactionFilter(date_in=[date(2024, 1, 1)], amount_in=[Decimal("5.00")]),
        )
        assert len(found) == 1

    @pytest.mark.asyncio
    async def test_increment_unknown_account(self):
        """Test incrementing a missing or foreign account fails."""
        store = InMemoryLedgerStore(accounts=[
            Account(id="chk", user_id=USER_ID, type=AccountType.CHECKING),
        ])
        with pytest.raises(NotFoundError):
            await store.increment_account_balance("nope", USER_ID, Decimal("1"))
        with pytest.raises(NotFoundError):
            await store.increment_account_balance("chk", "user-2", Decimal("1"))

    @pytest.mark.asyncio
    async def test_concurrent_increments(self):
        """Test no increment is lost under concurrency."""
        store = InMemoryLedgerStore(accounts=[
            Account(id="chk", user_id=USER_ID, type=AccountType.CHECKING),
        ])
        await asyncio.gather(*(
            store.increment_account_balance("chk", USER_ID, Decimal("1.25"))
            for _ in range(40)
        ))

        [account] = await store.find_accounts_by_ids(USER_ID, ["chk"])
        assert account.opening_balance == Decimal("50.00")


class TestGoogleSheetsLedgerStore:
    """Tests for GoogleSheetsLedgerStore with a mocked client."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.read_rows.return_value = []
        return client

    def test_transaction_row_round_trip(self, client):
        """Test a transaction survives the sheet row format."""
        store = GoogleSheetsLedgerStore(client)
        txn = make_transaction(
            to_account_id="sav",
            category="Food",
            metadata={"expenseId": "e1"},
            sequence=3,
        )
        txn = txn.model_copy(update={"transaction_key": txn.computed_key()})

        assert store._row_to_transaction(store._transaction_to_row(txn)) == txn

    @pytest.mark.asyncio
    async def test_bulk_insert_single_append(self, client):
        """Test one append_rows call for all non-colliding documents."""
        existing = make_transaction(description="Taken", sequence=9)
        existing = existing.model_copy(update={"transaction_key": existing.computed_key()})
        store = GoogleSheetsLedgerStore(client)
        client.read_rows.return_value = [store._transaction_to_row(existing)]
        sheet = client.get_transactions_sheet.return_value

        result = await store.insert_transactions([
            make_transaction(description="A"),
            make_transaction(description="taken"),
            make_transaction(description="a"),
        ])

        assert result.inserted_count == 1
        assert result.failed == 2
        sheet.append_rows.assert_called_once()
        [rows] = sheet.append_rows.call_args.args
        assert len(rows) == 1
        assert rows[0][3] == "10"

    @pytest.mark.asyncio
    async def test_increment_updates_one_cell(self, client):
        """Test the opening balance cell is rewritten with the new value."""
        store = GoogleSheetsLedgerStore(client)
        account = Account(id="chk", user_id=USER_ID, type=AccountType.CHECKING, opening_balance=Decimal("100.00"))
        client.read_rows.return_value = [store._account_to_row(account)]
        sheet = client.get_accounts_sheet.return_value

        await store.increment_account_balance("chk", USER_ID, Decimal("-25.50"))

        sheet.update_cell.assert_any_call(2, OPENING_BALANCE_COLUMN, "74.50")

    @pytest.mark.asyncio
    async def test_increment_missing_account(self, client):
        """Test NotFoundError passes through unwrapped."""
        store = GoogleSheetsLedgerStore(client)
        with pytest.raises(NotFoundError):
            await store.increment_account_balance("chk", USER_ID, Decimal("1"))

    @pytest.mark.asyncio
    async def test_backend_errors_wrapped(self, client):
        """Test API failures surface as StorageError."""
        client.get_accounts_sheet.side_effect = RuntimeError("quota exceeded")
        store = GoogleSheetsLedgerStore(client)
        with pytest.raises(StorageError, match="quota exceeded"):
            await store.find_accounts(USER_ID)
