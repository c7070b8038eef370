"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is supported as a ledger backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No server-side atomic increment: opening-balance updates are
  serialized with a per-account lock INSIDE this process only
- No unique index: transaction-key uniqueness is checked in Python
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to MongoDB/PostgreSQL later without changing business logic.
"""

import asyncio
import json
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_engine.config import get_settings
from ledger_engine.models.ledger import (
    Account,
    AccountType,
    InsertManyResult,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    TransactionKeyConflictError,
)


# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "type",
    "opening_balance",
    "credit_limit",
    "apr",
    "min_payment",
    "due_day",
    "website",
    "created_at",
    "updated_at",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "transaction_key",
    "sequence",
    "type",
    "from_account_id",
    "to_account_id",
    "amount",
    "date",
    "description",
    "category",
    "metadata_json",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

OPENING_BALANCE_COLUMN = ACCOUNT_COLUMNS.index("opening_balance") + 1
ACCOUNT_UPDATED_AT_COLUMN = ACCOUNT_COLUMNS.index("updated_at") + 1


def _safe_getter(row: list):
    """Column accessor tolerant of short rows."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _optional_decimal(value: str) -> Optional[Decimal]:
    return Decimal(value) if value else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=200
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        """All data rows of a worksheet (header excluded)."""
        return sheet.get_all_values()[1:]


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    Accounts and transactions live in two worksheets, one entity per row.
    Transaction metadata is JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._account_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._write_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _account_to_row(self, account: Account) -> list:
        """Convert an Account to a spreadsheet row."""
        return [
            account.id,
            account.user_id,
            account.name,
            account.type.value,
            str(account.opening_balance),
            str(account.credit_limit) if account.credit_limit is not None else "",
            str(account.apr) if account.apr is not None else "",
            str(account.min_payment) if account.min_payment is not None else "",
            str(account.due_day) if account.due_day is not None else "",
            account.website or "",
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
        ]

    def _row_to_account(self, row: list) -> Account:
        """Convert a spreadsheet row to an Account."""
        safe_get = _safe_getter(row)
        return Account(
            id=safe_get(0),
            user_id=safe_get(1),
            name=safe_get(2),
            type=AccountType(safe_get(3)),
            opening_balance=Decimal(safe_get(4, "0")),
            credit_limit=_optional_decimal(safe_get(5)),
            apr=_optional_decimal(safe_get(6)),
            min_payment=_optional_decimal(safe_get(7)),
            due_day=int(safe_get(8)) if safe_get(8) else None,
            website=safe_get(9) or None,
            created_at=datetime.fromisoformat(safe_get(10)),
            updated_at=datetime.fromisoformat(safe_get(11)),
        )

    def _transaction_to_row(self, txn: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            txn.id,
            txn.user_id,
            txn.transaction_key,
            str(txn.sequence),
            txn.type.value,
            txn.from_account_id or "",
            txn.to_account_id or "",
            str(txn.amount),
            txn.date.isoformat(),
            txn.description or "",
            txn.category or "",
            json.dumps(txn.metadata, default=str) if txn.metadata else "",
            txn.created_at.isoformat(),
            txn.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        safe_get = _safe_getter(row)
        return Transaction(
            id=safe_get(0),
            user_id=safe_get(1),
            transaction_key=safe_get(2),
            sequence=int(safe_get(3, "0")),
            type=TransactionType(safe_get(4)),
            from_account_id=safe_get(5) or None,
            to_account_id=safe_get(6) or None,
            amount=Decimal(safe_get(7)),
            date=date.fromisoformat(safe_get(8)),
            description=safe_get(9) or None,
            category=safe_get(10) or None,
            metadata=json.loads(safe_get(11)) if safe_get(11) else {},
            created_at=datetime.fromisoformat(safe_get(12)),
            updated_at=datetime.fromisoformat(safe_get(13)),
        )

    def _load_transactions(self) -> list[tuple[int, Transaction]]:
        """(sheet row number, transaction) for every readable row."""
        sheet = self._client.get_transactions_sheet()
        loaded = []
        for idx, row in enumerate(self._client.read_rows(sheet), start=2):  # Row 1 is header
            if not row or not row[0]:
                continue
            try:
                loaded.append((idx, self._row_to_transaction(row)))
            except Exception:
                continue  # Skip malformed rows
        return loaded

    def _load_accounts(self) -> list[tuple[int, Account]]:
        sheet = self._client.get_accounts_sheet()
        loaded = []
        for idx, row in enumerate(self._client.read_rows(sheet), start=2):
            if not row or not row[0]:
                continue
            try:
                loaded.append((idx, self._row_to_account(row)))
            except Exception:
                continue
        return loaded

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def find_accounts_by_ids(
        self,
        user_id: str,
        ids: Sequence[str],
    ) -> list[Account]:
        """Fetch the user's accounts among `ids`."""
        wanted = set(ids)
        try:
            return [
                account for _, account in self._load_accounts()
                if account.id in wanted and account.user_id == user_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to find accounts: {e}")

    async def find_accounts(self, user_id: str) -> list[Account]:
        """All accounts owned by the user."""
        try:
            return [
                account for _, account in self._load_accounts()
                if account.user_id == user_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def save_account(self, account: Account) -> bool:
        """Insert or replace an account row."""
        async with self._account_locks[account.id]:
            try:
                sheet = self._client.get_accounts_sheet()
                row = self._account_to_row(account)
                for idx, existing in self._load_accounts():
                    if existing.id == account.id:
                        sheet.update(f"A{idx}", [row], value_input_option="RAW")
                        return True
                sheet.append_row(row, value_input_option="RAW")
                return True
            except Exception as e:
                raise StorageError(f"Failed to save account: {e}")

    async def increment_account_balance(
        self,
        account_id: str,
        user_id: str,
        delta: Decimal,
    ) -> None:
        """
        Add `delta` to the stored opening balance.

        Serialized per account within this process; Sheets offers no
        server-side increment.
        """
        async with self._account_locks[account_id]:
            try:
                sheet = self._client.get_accounts_sheet()
                for idx, account in self._load_accounts():
                    if account.id == account_id and account.user_id == user_id:
                        new_balance = account.opening_balance + delta
                        sheet.update_cell(idx, OPENING_BALANCE_COLUMN, str(new_balance))
                        sheet.update_cell(
                            idx, ACCOUNT_UPDATED_AT_COLUMN, datetime.utcnow().isoformat()
                        )
                        return
                raise NotFoundError(f"Account not found: {account_id}")
            except NotFoundError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to adjust account balance: {e}")

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, newest first."""
        criteria = filter or TransactionFilter()
        try:
            matches = [
                txn for _, txn in self._load_transactions()
                if txn.user_id == user_id and criteria.matches(txn)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        matches.sort(key=lambda t: (t.date, t.sequence), reverse=True)

        # Apply pagination
        end = criteria.offset + criteria.limit if criteria.limit else None
        return matches[criteria.offset:end]

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        try:
            for _, txn in self._load_transactions():
                if txn.id == transaction_id and txn.user_id == user_id:
                    return txn
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def find_transaction_by_key(
        self,
        user_id: str,
        transaction_key: str,
    ) -> Optional[Transaction]:
        """Retrieve the transaction holding a key."""
        try:
            for _, txn in self._load_transactions():
                if txn.user_id == user_id and txn.transaction_key == transaction_key:
                    return txn
            return None
        except Exception as e:
            raise StorageError(f"Failed to look up transaction key: {e}")

    async def insert_transaction(self, txn: Transaction) -> Transaction:
        """Insert a single transaction, rejecting duplicate keys."""
        result = await self.insert_transactions([txn])
        if result.inserted_count == 0:
            raise DuplicateError(f"Duplicate transaction key for user {txn.user_id}")
        stored = await self.get_transaction(txn.user_id, result.inserted_ids[0])
        if stored is None:
            raise StorageError(f"Inserted transaction not readable: {txn.id}")
        return stored

    async def insert_transactions(
        self,
        docs: Sequence[Transaction],
    ) -> InsertManyResult:
        """
        Append all non-colliding documents in one API call.

        Key collisions (with stored rows or within the batch) are
        counted as failures and skipped.
        """
        async with self._write_lock:
            try:
                existing = self._load_transactions()
                taken_keys = {(t.user_id, t.transaction_key) for _, t in existing}
                taken_ids = {t.id for _, t in existing}
                sequence = max((t.sequence for _, t in existing), default=0)

                rows = []
                inserted_ids = []
                failed = 0
                for doc in docs:
                    key = doc.transaction_key or doc.computed_key()
                    if (doc.user_id, key) in taken_keys or doc.id in taken_ids:
                        failed += 1
                        continue
                    sequence += 1
                    stored = doc.model_copy(update={"transaction_key": key, "sequence": sequence})
                    rows.append(self._transaction_to_row(stored))
                    taken_keys.add((doc.user_id, key))
                    taken_ids.add(doc.id)
                    inserted_ids.append(doc.id)

                if rows:
                    sheet = self._client.get_transactions_sheet()
                    sheet.append_rows(rows, value_input_option="RAW")
            except Exception as e:
                raise StorageError(f"Failed to insert transactions: {e}")

        return InsertManyResult(
            inserted_count=len(inserted_ids),
            inserted_ids=inserted_ids,
            failed=failed,
        )

    async def update_transaction(self, txn: Transaction) -> Transaction:
        """Replace an existing transaction row."""
        async with self._write_lock:
            try:
                loaded = self._load_transactions()
                target = next(
                    ((idx, t) for idx, t in loaded if t.id == txn.id and t.user_id == txn.user_id),
                    None,
                )
                if target is None:
                    raise NotFoundError(f"Transaction not found: {txn.id}")

                key = txn.transaction_key or txn.computed_key()
                for _, other in loaded:
                    if other.id != txn.id and other.user_id == txn.user_id and other.transaction_key == key:
                        raise TransactionKeyConflictError(
                            "Another transaction with same key already exists",
                            conflicting_id=other.id,
                        )

                idx, existing = target
                updated = txn.model_copy(update={
                    "transaction_key": key,
                    "sequence": existing.sequence,
                })
                sheet = self._client.get_transactions_sheet()
                sheet.update(f"A{idx}", [self._transaction_to_row(updated)], value_input_option="RAW")
                return updated
            except (NotFoundError, DuplicateError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        """Delete a transaction by ID."""
        async with self._write_lock:
            try:
                for idx, txn in self._load_transactions():
                    if txn.id == transaction_id and txn.user_id == user_id:
                        self._client.get_transactions_sheet().delete_rows(idx)
                        return True
                return False
            except Exception as e:
                raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in self._client.read_rows(sheet):
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in self._load_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._load_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
