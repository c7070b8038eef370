"""
Data Models Package

This package contains all Pydantic models used by the Ledger Engine.
All data flowing through the system must conform to these schemas.
"""

from ledger_engine.models.ledger import (
    Account,
    AccountClass,
    AccountType,
    BalancePoint,
    ImportResult,
    InsertManyResult,
    NormalizedRow,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountClass",
    "AccountType",
    "BalancePoint",
    "ImportResult",
    "InsertManyResult",
    "NormalizedRow",
    "Transaction",
    "TransactionFilter",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
