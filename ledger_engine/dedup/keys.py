"""
Transaction identity keys for deduplication.

A transaction's identity is (user, date, amount, description).
Two flavours of the same canonical form are provided:

- transaction_key(): SHA-256 hex digest, persisted and unique per user
- duplicate_candidate_key(): the raw tuple string, used for fast
  in-memory comparison during bulk import

Both canonicalize identically, so equality on one implies
equality on the other for the same user.
"""

import hashlib
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

KEY_SEPARATOR = "||"
CANDIDATE_SEPARATOR = "|"

DateLike = Union[date, str]
AmountLike = Union[Decimal, int, float, str]


def canonical_date(value: DateLike) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def canonical_amount(value: AmountLike) -> str:
    """Format an amount with exactly two decimal places."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def canonical_description(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def transaction_key(
    user_id: str,
    date: DateLike,
    amount: AmountLike,
    description: Optional[str] = None,
) -> str:
    """
    Deterministic 64-char hex key for a transaction.

    Other fields (type, category, accounts, metadata) do not
    participate: logically identical entries collide on purpose.
    """
    raw = KEY_SEPARATOR.join([
        user_id,
        canonical_date(date),
        canonical_amount(amount),
        canonical_description(description),
    ])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def duplicate_candidate_key(
    date: DateLike,
    amount: AmountLike,
    description: Optional[str] = None,
) -> str:
    """Un-hashed date|amount|description tuple for bulk comparison."""
    return CANDIDATE_SEPARATOR.join([
        canonical_date(date),
        canonical_amount(amount),
        canonical_description(description),
    ])
