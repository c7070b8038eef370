"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep replay and import logic decoupled from persistence

The interface is intentionally simple - we're not building a full ORM.
Just the find/insert/update calls the ledger core needs.

CONCURRENCY CONTRACT:
- increment_account_balance MUST be atomic (no read-then-write races)
- insert_transactions is unordered and continues past individual
  failures; the result reports only what was persisted
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

from ledger_engine.models.ledger import (
    Account,
    InsertManyResult,
    Transaction,
    TransactionFilter,
)
from ledger_engine.models.audit import AuditEvent


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the ledger store.

    Any storage implementation (Google Sheets, MongoDB, PostgreSQL...)
    must implement these methods. Every query is scoped to a user.
    """

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_accounts_by_ids(
        self,
        user_id: str,
        ids: Sequence[str],
    ) -> list[Account]:
        """
        Fetch the user's accounts among `ids`.

        Ids that do not exist, or belong to another user, are simply
        absent from the result.
        """
        pass

    @abstractmethod
    async def find_accounts(self, user_id: str) -> list[Account]:
        """All accounts owned by the user."""
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> bool:
        """
        Insert or replace an account.

        Returns:
            True if saved successfully
        """
        pass

    @abstractmethod
    async def increment_account_balance(
        self,
        account_id: str,
        user_id: str,
        delta: Decimal,
    ) -> None:
        """
        Atomically add `delta` to the account's opening balance.

        Raises:
            NotFoundError: If the account doesn't exist for this user
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        List the user's transactions matching `filter`.

        Results are newest first (date, then insertion order, descending);
        `filter.limit` / `filter.offset` paginate after sorting.
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        """Retrieve a transaction by ID, None if not found."""
        pass

    @abstractmethod
    async def find_transaction_by_key(
        self,
        user_id: str,
        transaction_key: str,
    ) -> Optional[Transaction]:
        """Retrieve the transaction holding `transaction_key`, if any."""
        pass

    @abstractmethod
    async def insert_transaction(self, txn: Transaction) -> Transaction:
        """
        Insert a single transaction.

        Returns:
            The stored transaction (with its insertion sequence)

        Raises:
            DuplicateError: If the user already has this transaction key
        """
        pass

    @abstractmethod
    async def insert_transactions(
        self,
        docs: Sequence[Transaction],
    ) -> InsertManyResult:
        """
        Unordered bulk insert.

        A document that collides on (user_id, transaction_key) is
        skipped and counted in `failed`; the rest are kept.
        """
        pass

    @abstractmethod
    async def update_transaction(self, txn: Transaction) -> Transaction:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
            DuplicateError: If the new key belongs to another transaction
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if something was deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class TransactionKeyConflictError(DuplicateError):
    """An edit would give a transaction the key of another transaction."""

    def __init__(self, message: str, conflicting_id: Optional[str] = None):
        self.conflicting_id = conflicting_id
        super().__init__(message)


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
