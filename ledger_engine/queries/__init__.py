"""Ledger query package."""

from ledger_engine.queries.executor import LedgerQueryExecutor

__all__ = ["LedgerQueryExecutor"]
