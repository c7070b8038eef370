"""
Ledger Query Execution

DESIGN DECISION: Balance queries are DETERMINISTIC replays.
Nothing here reads a stored "current balance" - there is none.
Each query loads a snapshot of the relevant transactions from the
ledger store and hands it to the pure replay engine.

This is the surface the HTTP/dashboard layer calls.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Sequence, Union

from ledger_engine.audit import AuditLogger
from ledger_engine.balance import (
    compute_balance,
    compute_balances,
    replay_history,
    solve_opening_balance,
)
from ledger_engine.config import get_settings
from ledger_engine.models.ledger import (
    Account,
    BalancePoint,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.services.storage import LedgerStoreInterface, NotFoundError


class LedgerQueryExecutor:
    """
    Executes balance and listing queries against the ledger store.

    GUARANTEES:
    - Balances are always replayed from opening balance + transactions
    - Transactions dated after `as_of` are never loaded
    - Unknown accounts are reported, never guessed
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = get_settings().imports

    async def _get_account(self, user_id: str, account_id: str) -> Account:
        accounts = await self._store.find_accounts_by_ids(user_id, [account_id])
        if not accounts:
            raise NotFoundError(f"Account not found: {account_id}")
        return accounts[0]

    async def _account_transactions(
        self,
        user_id: str,
        account_id: str,
        as_of: Optional[date],
    ) -> list[Transaction]:
        return await self._store.find_transactions(
            user_id,
            TransactionFilter(account_id=account_id, date_to=as_of),
        )

    async def get_balance(
        self,
        user_id: str,
        account_id: str,
        as_of: Optional[date] = None,
    ) -> Decimal:
        """
        Balance of one account, optionally as of a date (inclusive).

        Raises:
            NotFoundError: If the account doesn't exist for this user
        """
        account = await self._get_account(user_id, account_id)
        transactions = await self._account_transactions(user_id, account_id, as_of)
        balance = compute_balance(account, transactions, as_of)

        if self._audit_logger:
            await self._audit_logger.log_balance_computed(
                user_id=user_id,
                account_count=1,
                as_of=as_of.isoformat() if as_of else None,
            )
        return balance

    async def get_balances(
        self,
        user_id: str,
        account_ids: Optional[Sequence[str]] = None,
        as_of: Optional[date] = None,
    ) -> dict[str, Decimal]:
        """
        Balances for many accounts from ONE transaction snapshot.

        Args:
            account_ids: Accounts to evaluate; None means all of the user's
            as_of: Optional inclusive cutoff

        Returns:
            {account_id: balance}; ids the user doesn't own are omitted
        """
        if account_ids is None:
            accounts = await self._store.find_accounts(user_id)
        else:
            accounts = await self._store.find_accounts_by_ids(user_id, account_ids)
        if not accounts:
            return {}

        transactions = await self._store.find_transactions(
            user_id,
            TransactionFilter(date_to=as_of),
        )
        balances = compute_balances(accounts, transactions, as_of)

        if self._audit_logger:
            await self._audit_logger.log_balance_computed(
                user_id=user_id,
                account_count=len(accounts),
                as_of=as_of.isoformat() if as_of else None,
            )
        return balances

    async def get_balance_history(
        self,
        user_id: str,
        account_id: str,
        as_of: Optional[date] = None,
    ) -> list[BalancePoint]:
        """Running balance after each transaction, oldest first."""
        account = await self._get_account(user_id, account_id)
        transactions = await self._account_transactions(user_id, account_id, as_of)
        return replay_history(account, transactions, as_of)

    async def suggest_opening_balance(
        self,
        user_id: str,
        account_id: str,
        known_balance: Union[Decimal, int, str],
        as_of: Optional[date] = None,
    ) -> Decimal:
        """
        Opening balance that would make replay match a known balance.

        Read-only: the caller decides whether to save it.
        """
        account = await self._get_account(user_id, account_id)
        transactions = await self._account_transactions(user_id, account_id, as_of)
        return solve_opening_balance(account, transactions, known_balance, as_of)

    async def list_transactions(
        self,
        user_id: str,
        type: Optional[TransactionType] = None,
        account_id: Optional[str] = None,
        month: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        Newest-first listing.

        Args:
            type: Only this transaction type
            account_id: Either side matches
            month: "YYYY-MM"
            limit: Page size, clamped to the configured maximum
            offset: Number of results to skip
        """
        limit = max(1, min(limit, self._settings.list_limit_max))
        return await self._store.find_transactions(
            user_id,
            TransactionFilter(
                type=type,
                account_id=account_id,
                month=month,
                limit=limit,
                offset=max(offset, 0),
            ),
        )
