"""
Import Validation

DESIGN DECISION: Validation is all-or-nothing and happens BEFORE
anything is written to the ledger.

FILE CHECKS (no storage needed):
- Upload size within limits
- At least one usable row, with a distinct message for a
  header-only file vs. a malformed/empty one

REFERENCE CHECKS (storage needed):
- Every account id mentioned by any row, plus the import's target
  account, must exist AND belong to the importing user
- A single unknown id rejects the whole import, listing every
  missing id

Contrast with the insert stage, which is partial-failure tolerant.
Validation NEVER silently fixes rows; it rejects or lets through.
"""

from typing import Iterable, Optional, Sequence

from ledger_engine.config import get_settings
from ledger_engine.ingest.csv_parser import split_lines
from ledger_engine.models.ledger import Account, NormalizedRow, Transaction
from ledger_engine.services.storage import LedgerStoreInterface


NO_DATA_ROWS_MESSAGE = "CSV contains only headers; add at least one data row"
NO_VALID_ROWS_MESSAGE = (
    "CSV is empty, missing required columns (date,amount), or improperly formatted"
)


class ImportValidationError(Exception):
    """Base exception for rejected imports and edits."""
    pass


class NoDataRowsError(ImportValidationError):
    """The CSV has a header line but no data rows."""

    def __init__(self, message: str = NO_DATA_ROWS_MESSAGE):
        super().__init__(message)


class NoValidRowsError(ImportValidationError):
    """The CSV is empty, lacks required columns, or no row could be parsed."""

    def __init__(self, message: str = NO_VALID_ROWS_MESSAGE):
        super().__init__(message)


class UnknownAccountError(ImportValidationError):
    """One or more referenced accounts do not exist for this user."""

    def __init__(self, missing_ids: Sequence[str]):
        self.missing_ids = list(missing_ids)
        super().__init__(f"Invalid account IDs: {', '.join(self.missing_ids)}")


class UploadTooLargeError(ImportValidationError):
    """The uploaded file exceeds the configured size limit."""
    pass


class TransactionValidationError(ImportValidationError):
    """A single transaction is missing required information."""
    pass


def referenced_account_ids(
    rows: Iterable[NormalizedRow],
    target_account_id: Optional[str] = None,
) -> list[str]:
    """Every account id mentioned, in first-seen order, target last."""
    seen: dict[str, None] = {}
    for row in rows:
        for account_id in (row.from_account_id, row.to_account_id):
            if account_id:
                seen.setdefault(account_id, None)
    if target_account_id:
        seen.setdefault(target_account_id, None)
    return list(seen)


class ImportValidator:
    """
    Validates imports and single-transaction writes.

    File checks run without storage; reference checks need the ledger store.
    """

    def __init__(self, store: LedgerStoreInterface):
        self._store = store
        self._settings = get_settings().imports

    def check_upload_size(self, size_bytes: int) -> None:
        limit = self._settings.max_upload_size_bytes
        if size_bytes > limit:
            raise UploadTooLargeError(
                f"CSV upload is {size_bytes} bytes; the limit is "
                f"{self._settings.max_upload_size_mb} MB"
            )

    def check_has_rows(self, csv_text: str, rows: Sequence[NormalizedRow]) -> None:
        """
        Reject an import that produced no rows.

        Raises:
            NoDataRowsError: The file is a lone header line
            NoValidRowsError: Anything else that yielded nothing
        """
        if rows:
            return
        if len(split_lines(csv_text)) == 1:
            raise NoDataRowsError()
        raise NoValidRowsError()

    async def check_accounts(
        self,
        user_id: str,
        account_ids: Sequence[str],
    ) -> dict[str, Account]:
        """
        Resolve account ids for the user.

        Returns:
            Mapping of id -> Account for every requested id

        Raises:
            UnknownAccountError: Listing every id not owned by the user
        """
        if not account_ids:
            return {}

        accounts = await self._store.find_accounts_by_ids(user_id, account_ids)
        found = {account.id: account for account in accounts}
        missing = [account_id for account_id in account_ids if account_id not in found]
        if missing:
            raise UnknownAccountError(missing)
        return found

    async def validate_import(
        self,
        user_id: str,
        rows: Sequence[NormalizedRow],
        target_account_id: Optional[str] = None,
    ) -> dict[str, Account]:
        """Reference checks for a parsed import."""
        return await self.check_accounts(
            user_id,
            referenced_account_ids(rows, target_account_id),
        )

    async def validate_transaction(self, txn: Transaction) -> dict[str, Account]:
        """
        Checks for a user-entered transaction.

        At least one side must be set and every side must be the
        user's own account.
        """
        if not txn.from_account_id and not txn.to_account_id:
            raise TransactionValidationError(
                "Missing required fields: type, amount, date, and at least one accountId"
            )
        ids = [i for i in dict.fromkeys((txn.from_account_id, txn.to_account_id)) if i]
        return await self.check_accounts(txn.user_id, ids)
