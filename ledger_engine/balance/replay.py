"""
Balance Replay Engine

DESIGN DECISION: There is no stored "current balance".
An account's balance at any instant is recomputed by folding its
transactions, oldest first, over the account's opening balance.

Two accounting rules exist and are selected ONCE per account:

ASSET (checking, savings):
- money arriving (to_account_id matches)  -> +amount
- money leaving  (from_account_id matches) -> -amount
- regardless of transaction type

LIABILITY (credit, loan), balance = debt owed:
- expense charged to the account (from_account_id matches) -> +amount
- payment made to the account (to_account_id matches)      -> -amount
- any other type/direction leaves the debt unchanged

Everything here is pure: same inputs, same Decimal result, no I/O.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from ledger_engine.models.ledger import (
    Account,
    AccountClass,
    BalancePoint,
    Transaction,
    TransactionType,
)

ZERO = Decimal("0")

# (account_id, transaction) -> signed effect on the account balance
DeltaStrategy = Callable[[str, Transaction], Decimal]


def asset_delta(account_id: str, txn: Transaction) -> Decimal:
    """Effect of a transaction on an asset account."""
    if txn.to_account_id == account_id:
        return txn.amount
    if txn.from_account_id == account_id:
        return -txn.amount
    return ZERO


def liability_delta(account_id: str, txn: Transaction) -> Decimal:
    """
    Effect of a transaction on a liability account.

    Transfers, adjustments and income deposits touching a credit or
    loan account are ignored. Whether transfers should pay down debt
    is an open product question; do not change without a decision.
    """
    if txn.from_account_id == account_id and txn.type == TransactionType.EXPENSE:
        return txn.amount
    if txn.to_account_id == account_id and txn.type == TransactionType.PAYMENT:
        return -txn.amount
    return ZERO


STRATEGIES: dict[AccountClass, DeltaStrategy] = {
    AccountClass.ASSET: asset_delta,
    AccountClass.LIABILITY: liability_delta,
}


def strategy_for(account: Account) -> DeltaStrategy:
    return STRATEGIES[account.account_class]


def _replay_order(
    account: Account,
    transactions: Iterable[Transaction],
    as_of: Optional[date],
) -> list[Transaction]:
    """
    Transactions that apply to the account, oldest first.

    A transaction dated exactly on `as_of` is included. Ties on date
    keep insertion order (store sequence, then input order: sorted()
    is stable).
    """
    relevant = [
        txn for txn in transactions
        if txn.references(account.id)
        and (as_of is None or txn.date <= as_of)
    ]
    return sorted(relevant, key=lambda t: (t.date, t.sequence))


def compute_balance(
    account: Account,
    transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
) -> Decimal:
    """
    Replay the account's transactions over its opening balance.

    Args:
        account: The account to evaluate
        transactions: Transactions referencing the account (others are ignored)
        as_of: Optional inclusive cutoff date

    Returns:
        The balance at the end of `as_of` (or after every transaction)
    """
    delta = strategy_for(account)
    balance = account.opening_balance
    for txn in _replay_order(account, transactions, as_of):
        balance += delta(account.id, txn)
    return balance


def partition_by_account(
    account_ids: Iterable[str],
    transactions: Iterable[Transaction],
) -> dict[str, list[Transaction]]:
    """
    Bucket transactions per account in a single pass.

    A transaction lands in the bucket of each side it references,
    at most once per bucket.
    """
    buckets: dict[str, list[Transaction]] = {account_id: [] for account_id in account_ids}
    for txn in transactions:
        if txn.from_account_id in buckets:
            buckets[txn.from_account_id].append(txn)
        if txn.to_account_id in buckets and txn.to_account_id != txn.from_account_id:
            buckets[txn.to_account_id].append(txn)
    return buckets


def compute_balances(
    accounts: Sequence[Account],
    all_transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
) -> dict[str, Decimal]:
    """
    Balances for many accounts at once.

    The transaction list is walked once to build per-account buckets
    rather than re-filtered for every account.
    """
    buckets = partition_by_account((a.id for a in accounts), all_transactions)
    return {
        account.id: compute_balance(account, buckets[account.id], as_of)
        for account in accounts
    }


def net_effect(
    account: Account,
    transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
) -> Decimal:
    """Sum of all replayed deltas, without the opening balance."""
    delta = strategy_for(account)
    return sum(
        (delta(account.id, txn) for txn in _replay_order(account, transactions, as_of)),
        ZERO,
    )


def solve_opening_balance(
    account: Account,
    transactions: Iterable[Transaction],
    known_balance: Union[Decimal, int, str],
    as_of: Optional[date] = None,
) -> Decimal:
    """
    Opening balance that makes replay land on a known balance.

    Typical use: a statement says the account held X on `as_of`;
    this returns the baseline to store so replay agrees with the
    bank. Nothing is written.
    """
    target = known_balance if isinstance(known_balance, Decimal) else Decimal(str(known_balance))
    return target - net_effect(account, transactions, as_of)


def replay_history(
    account: Account,
    transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
) -> list[BalancePoint]:
    """Running balance after each replayed transaction, oldest first."""
    delta = strategy_for(account)
    balance = account.opening_balance
    points = []
    for txn in _replay_order(account, transactions, as_of):
        change = delta(account.id, txn)
        balance += change
        points.append(BalancePoint(
            date=txn.date,
            transaction_id=txn.id,
            delta=change,
            balance=balance,
        ))
    return points
