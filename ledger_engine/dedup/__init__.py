"""Deduplication key package."""

from ledger_engine.dedup.keys import (
    canonical_amount,
    duplicate_candidate_key,
    transaction_key,
)

__all__ = [
    "canonical_amount",
    "duplicate_candidate_key",
    "transaction_key",
]
