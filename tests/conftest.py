"""
Shared fixtures.

Every test runs against the in-memory ledger store; no network access.
"""

from decimal import Decimal

import pytest

from ledger_engine.audit import AuditLogger
from ledger_engine.models.ledger import Account, AccountType
from ledger_engine.orchestrator import ImportFlow, TransactionFlow
from ledger_engine.queries import LedgerQueryExecutor
from ledger_engine.services.storage import InMemoryAuditStorage, InMemoryLedgerStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def checking() -> Account:
    return Account(
        id="chk",
        user_id=USER_ID,
        name="Everyday Checking",
        type=AccountType.CHECKING,
        opening_balance=Decimal("100.00"),
    )


@pytest.fixture
def savings() -> Account:
    return Account(
        id="sav",
        user_id=USER_ID,
        name="Savings",
        type=AccountType.SAVINGS,
        opening_balance=Decimal("1000.00"),
    )


@pytest.fixture
def credit_card() -> Account:
    return Account(
        id="cc",
        user_id=USER_ID,
        name="Rewards Card",
        type=AccountType.CREDIT,
        opening_balance=Decimal("0"),
        credit_limit=Decimal("5000"),
        due_day=15,
    )


@pytest.fixture
def foreign_account() -> Account:
    """Belongs to somebody else."""
    return Account(
        id="other",
        user_id=OTHER_USER_ID,
        name="Not Yours",
        type=AccountType.CHECKING,
    )


@pytest.fixture
def store(checking, savings, credit_card, foreign_account) -> InMemoryLedgerStore:
    return InMemoryLedgerStore(accounts=[checking, savings, credit_card, foreign_account])


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def import_flow(store, audit_logger) -> ImportFlow:
    return ImportFlow(store, audit_logger=audit_logger)


@pytest.fixture
def transaction_flow(store, audit_logger) -> TransactionFlow:
    return TransactionFlow(store, audit_logger=audit_logger)


@pytest.fixture
def query_executor(store, audit_logger) -> LedgerQueryExecutor:
    return LedgerQueryExecutor(store, audit_logger=audit_logger)
