"""
Core Ledger Models for Ledger Engine

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Keep balances derivable (no stored "current balance" anywhere)

DESIGN DECISION: An account only carries an OPENING balance.
The balance at any instant is replayed from the transactions that
reference the account. See ledger_engine.balance.replay.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from ledger_engine.dedup.keys import transaction_key


MAX_DESCRIPTION_LENGTH = 500


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountClass(str, Enum):
    """
    Accounting class of an account.

    The two classes follow genuinely different replay rules, so the
    class is resolved once per account and never re-branched per row.
    """
    ASSET = "asset"
    LIABILITY = "liability"


class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    LOAN = "loan"

    @property
    def account_class(self) -> AccountClass:
        if self in (AccountType.CREDIT, AccountType.LOAN):
            return AccountClass.LIABILITY
        return AccountClass.ASSET


class TransactionType(str, Enum):
    """
    Ledger transaction types.

    Values match the `type` column of the generic CSV format.
    """
    INCOME_DEPOSIT = "income_deposit"
    PAYMENT = "payment"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A bank, credit or loan account.

    CRITICAL: `opening_balance` is the baseline BEFORE any ledger
    transaction is replayed. It is NOT the current balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=_new_id,
        description="Unique account ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the account"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="Display name"
    )
    type: AccountType = Field(
        ...,
        description="Account type"
    )
    opening_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance before any replayed transaction"
    )

    # Liability attributes
    credit_limit: Optional[Decimal] = Field(default=None, ge=0)
    apr: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Annual percentage rate"
    )
    min_payment: Optional[Decimal] = Field(default=None, ge=0)
    due_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the payment is due"
    )
    website: Optional[str] = None

    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    @property
    def account_class(self) -> AccountClass:
        return self.type.account_class


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    One atomic ledger entry.

    `amount` is always a non-negative magnitude; direction comes from
    `type` together with which side (`from`/`to`) matches the account
    being evaluated.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=_new_id,
        description="Unique transaction ID"
    )
    user_id: str = Field(..., min_length=1)
    type: TransactionType
    from_account_id: Optional[str] = Field(
        default=None,
        description="Source account (optional for income deposits)"
    )
    to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account (optional for expenses)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Magnitude of the transaction"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date (no time of day)"
    )
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    category: Optional[str] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Open key-value map (expenseId, refundFor, runningBalance...)"
    )
    transaction_key: str = Field(
        default="",
        description="Deduplication hash, unique per user"
    )

    # Store-assigned insertion order, used to break date ties on replay
    sequence: int = Field(default=0, ge=0)

    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    @field_validator('from_account_id', 'to_account_id', 'description', 'category')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as absent."""
        if v is not None and not v.strip():
            return None
        return v

    def computed_key(self) -> str:
        """The transaction key implied by the current field values."""
        return transaction_key(
            self.user_id,
            self.date,
            self.amount,
            self.description,
        )

    def references(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)


class TransactionFilter(BaseModel):
    """
    Narrowed existence/listing query against the ledger store.

    All populated criteria must match (logical AND).
    """

    date_in: Optional[list[dt.date]] = None
    amount_in: Optional[list[Decimal]] = None
    type: Optional[TransactionType] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Matches either side of the transaction"
    )
    month: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-\d{2}$",
        description="YYYY-MM"
    )
    date_to: Optional[dt.date] = Field(
        default=None,
        description="Inclusive upper bound on date"
    )
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    def matches(self, txn: Transaction) -> bool:
        """Apply the criteria to a single transaction."""
        if self.date_in is not None and txn.date not in self.date_in:
            return False
        if self.amount_in is not None and txn.amount not in self.amount_in:
            return False
        if self.type and txn.type != self.type:
            return False
        if self.account_id and not txn.references(self.account_id):
            return False
        if self.month and not txn.date.isoformat().startswith(self.month):
            return False
        if self.date_to and txn.date > self.date_to:
            return False
        return True


class InsertManyResult(BaseModel):
    """Outcome of an unordered bulk insert."""

    inserted_count: int = Field(ge=0)
    inserted_ids: list[str] = Field(default_factory=list)
    failed: int = Field(
        default=0,
        ge=0,
        description="Documents the store refused (e.g. key collisions)"
    )


# =============================================================================
# IMPORT MODELS
# =============================================================================

class NormalizedRow(BaseModel):
    """
    One transaction candidate produced by the CSV normalizer.

    Unlike Transaction, `amount` keeps the SIGN found in the file;
    the sign decides which side the target account is placed on.
    """

    date: dt.date
    type: TransactionType
    amount: Decimal
    description: str = ""
    category: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)


class ImportResult(BaseModel):
    """Counts returned to the caller of a CSV import."""

    imported: int = Field(ge=0)
    attempted: int = Field(ge=0)
    duplicates_skipped: int = Field(ge=0)
    account_adjusted: bool = False
    balance_delta: Optional[Decimal] = None
    failed: int = Field(
        default=0,
        ge=0,
        description="Rows refused by the store during bulk insert"
    )
    inserted_ids: list[str] = Field(default_factory=list)


class BalancePoint(BaseModel):
    """Running balance after one replayed transaction."""

    date: dt.date
    transaction_id: str
    delta: Decimal
    balance: Decimal
