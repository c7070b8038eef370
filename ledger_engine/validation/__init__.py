"""Validation package."""

from ledger_engine.validation.validator import (
    ImportValidationError,
    ImportValidator,
    NoDataRowsError,
    NoValidRowsError,
    TransactionValidationError,
    UnknownAccountError,
    UploadTooLargeError,
)

__all__ = [
    "ImportValidationError",
    "ImportValidator",
    "NoDataRowsError",
    "NoValidRowsError",
    "TransactionValidationError",
    "UnknownAccountError",
    "UploadTooLargeError",
]
