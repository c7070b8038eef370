"""
In-Memory Storage Implementation

Reference implementation of the storage interfaces.
Used by the test-suite and as the default backend when no external
store is configured.

It enforces the same guarantees a real database would:
- (user_id, transaction_key) is unique
- opening-balance increments are serialized per account
- callers never receive references to stored objects
"""

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ledger_engine.models.ledger import (
    Account,
    InsertManyResult,
    Transaction,
    TransactionFilter,
)
from ledger_engine.models.audit import AuditEvent
from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    TransactionKeyConflictError,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Dictionary-backed ledger store.

    Transactions get a monotonically increasing `sequence` on insert,
    which replay uses to order same-day entries.
    """

    def __init__(
        self,
        accounts: Optional[Iterable[Account]] = None,
        transactions: Optional[Iterable[Transaction]] = None,
    ):
        self._accounts: dict[str, Account] = {}
        self._transactions: dict[str, Transaction] = {}
        self._keys: dict[tuple[str, str], str] = {}
        self._sequence = itertools.count(1)
        self._account_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        for account in accounts or ():
            self._accounts[account.id] = account.model_copy(deep=True)
        for txn in transactions or ():
            self._store(self._prepare(txn))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _prepare(self, txn: Transaction) -> Transaction:
        """Copy, fill in the key if missing, and check uniqueness."""
        key = txn.transaction_key or txn.computed_key()
        if txn.id in self._transactions:
            raise DuplicateError(f"Transaction id already exists: {txn.id}")
        if (txn.user_id, key) in self._keys:
            raise DuplicateError(f"Duplicate transaction key for user {txn.user_id}")
        return txn.model_copy(
            update={"transaction_key": key, "sequence": next(self._sequence)},
            deep=True,
        )

    def _store(self, txn: Transaction) -> None:
        self._transactions[txn.id] = txn
        self._keys[(txn.user_id, txn.transaction_key)] = txn.id

    def _owned_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        txn = self._transactions.get(transaction_id)
        if txn is None or txn.user_id != user_id:
            return None
        return txn

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def find_accounts_by_ids(
        self,
        user_id: str,
        ids: Sequence[str],
    ) -> list[Account]:
        wanted = set(ids)
        return [
            account.model_copy(deep=True)
            for account in self._accounts.values()
            if account.id in wanted and account.user_id == user_id
        ]

    async def find_accounts(self, user_id: str) -> list[Account]:
        return [
            account.model_copy(deep=True)
            for account in self._accounts.values()
            if account.user_id == user_id
        ]

    async def save_account(self, account: Account) -> bool:
        async with self._account_locks[account.id]:
            self._accounts[account.id] = account.model_copy(deep=True)
        return True

    async def increment_account_balance(
        self,
        account_id: str,
        user_id: str,
        delta: Decimal,
    ) -> None:
        async with self._account_locks[account_id]:
            account = self._accounts.get(account_id)
            if account is None or account.user_id != user_id:
                raise NotFoundError(f"Account not found: {account_id}")
            self._accounts[account_id] = account.model_copy(update={
                "opening_balance": account.opening_balance + delta,
                "updated_at": datetime.utcnow(),
            })

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        criteria = filter or TransactionFilter()
        matches = [
            txn for txn in self._transactions.values()
            if txn.user_id == user_id and criteria.matches(txn)
        ]
        matches.sort(key=lambda t: (t.date, t.sequence), reverse=True)

        end = criteria.offset + criteria.limit if criteria.limit else None
        return [txn.model_copy(deep=True) for txn in matches[criteria.offset:end]]

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        txn = self._owned_transaction(user_id, transaction_id)
        return txn.model_copy(deep=True) if txn else None

    async def find_transaction_by_key(
        self,
        user_id: str,
        transaction_key: str,
    ) -> Optional[Transaction]:
        transaction_id = self._keys.get((user_id, transaction_key))
        if transaction_id is None:
            return None
        return self._transactions[transaction_id].model_copy(deep=True)

    async def insert_transaction(self, txn: Transaction) -> Transaction:
        stored = self._prepare(txn)
        self._store(stored)
        return stored.model_copy(deep=True)

    async def insert_transactions(
        self,
        docs: Sequence[Transaction],
    ) -> InsertManyResult:
        inserted_ids = []
        failed = 0
        for doc in docs:
            try:
                stored = self._prepare(doc)
            except DuplicateError:
                failed += 1
                continue
            self._store(stored)
            inserted_ids.append(stored.id)

        return InsertManyResult(
            inserted_count=len(inserted_ids),
            inserted_ids=inserted_ids,
            failed=failed,
        )

    async def update_transaction(self, txn: Transaction) -> Transaction:
        existing = self._owned_transaction(txn.user_id, txn.id)
        if existing is None:
            raise NotFoundError(f"Transaction not found: {txn.id}")

        key = txn.transaction_key or txn.computed_key()
        owner = self._keys.get((txn.user_id, key))
        if owner is not None and owner != txn.id:
            raise TransactionKeyConflictError(
                "Another transaction with same key already exists",
                conflicting_id=owner,
            )

        updated = txn.model_copy(
            update={"transaction_key": key, "sequence": existing.sequence},
            deep=True,
        )
        del self._keys[(existing.user_id, existing.transaction_key)]
        self._store(updated)
        return updated.model_copy(deep=True)

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        txn = self._owned_transaction(user_id, transaction_id)
        if txn is None:
            return False
        del self._transactions[transaction_id]
        del self._keys[(txn.user_id, txn.transaction_key)]
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
