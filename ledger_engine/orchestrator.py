"""
Main Orchestrator for the Ledger Engine

This module ties together all the components and defines the
end-to-end flows for:
1. CSV Import (bytes → parse → validate → dedup → insert → adjust)
2. Transaction edits (create / update / delete with key checks)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until the whole import has been validated
- Duplicates are counted, never inserted
- The target account's opening balance moves by exactly what was inserted
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from ledger_engine.audit import AuditLogger, create_correlation_id
from ledger_engine.config import get_settings
from ledger_engine.dedup import duplicate_candidate_key, transaction_key
from ledger_engine.ingest import DEFAULT_RULES, TypeInferenceRule, parse_csv
from ledger_engine.models.ledger import (
    ImportResult,
    NormalizedRow,
    Transaction,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.queries import LedgerQueryExecutor
from ledger_engine.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    TransactionKeyConflictError,
)
from ledger_engine.validation import (
    ImportValidationError,
    ImportValidator,
    TransactionValidationError,
    UnknownAccountError,
)


logger = structlog.get_logger("ledger_engine.orchestrator")

EDITABLE_FIELDS = frozenset({
    "type",
    "amount",
    "date",
    "from_account_id",
    "to_account_id",
    "description",
    "category",
    "metadata",
})


class ImportFlow:
    """
    Orchestrates the CSV import flow.

    Flow:
    1. Parse → normalize rows (generic or bank-statement layout)
    2. Validate → every referenced account belongs to the user
    3. Dedup → skip rows already in the ledger (or earlier in the file)
    4. Place → put the target account on the side the sign implies
    5. Insert → unordered bulk insert, tolerating per-row failures
    6. Adjust → ONE atomic opening-balance increment on the target

    Steps 1-2 reject the whole file. Steps 5-6 only ever reflect
    rows that actually reached the store.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        validator: Optional[ImportValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        rules: Sequence[TypeInferenceRule] = DEFAULT_RULES,
    ):
        self._store = store
        self._validator = validator or ImportValidator(store)
        self._audit_logger = audit_logger
        self._rules = tuple(rules)
        self._settings = get_settings().imports

    async def import_csv_bytes(
        self,
        user_id: str,
        data: bytes,
        target_account_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Import an uploaded CSV file.

        Enforces the upload size limit, then decodes UTF-8 (a leading
        byte-order mark is tolerated).
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            self._validator.check_upload_size(len(data))
            text = data.decode("utf-8-sig")
        except (ImportValidationError, UnicodeDecodeError) as e:
            await self._reject(user_id, str(e), correlation_id)
            raise

        return await self.import_csv(
            user_id,
            text,
            target_account_id=target_account_id,
            correlation_id=correlation_id,
        )

    async def import_csv(
        self,
        user_id: str,
        csv_text: str,
        target_account_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Import CSV text into the user's ledger.

        Raises:
            NoDataRowsError: Header line only
            NoValidRowsError: Nothing parseable
            UnknownAccountError: Some referenced account isn't the user's
        """
        correlation_id = correlation_id or create_correlation_id()

        # Step 1: Parse
        rows = parse_csv(
            csv_text,
            rules=self._rules,
            year_pivot=self._settings.two_digit_year_pivot,
        )
        try:
            self._validator.check_has_rows(csv_text, rows)
        except ImportValidationError as e:
            await self._reject(user_id, str(e), correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_import_received(
                user_id=user_id,
                row_count=len(rows),
                target_account_id=target_account_id,
                correlation_id=correlation_id,
            )

        # Step 2: Validate references
        try:
            await self._validator.validate_import(user_id, rows, target_account_id)
        except UnknownAccountError as e:
            await self._reject(
                user_id,
                str(e),
                correlation_id,
                details={"missing_ids": e.missing_ids},
            )
            raise

        # Step 3: Dedup
        fresh = await self._drop_duplicates(user_id, rows)
        duplicates = len(rows) - len(fresh)
        if duplicates and self._audit_logger:
            await self._audit_logger.log_duplicates_skipped(
                user_id=user_id,
                count=duplicates,
                correlation_id=correlation_id,
            )

        # Step 4: Build documents
        docs = [self._to_transaction(user_id, row, target_account_id) for row in fresh]
        signed = {doc.id: row.amount for doc, row in zip(docs, fresh)}

        # Step 5: Insert
        imported = 0
        failed = 0
        inserted_ids: list[str] = []
        if docs:
            try:
                result = await self._store.insert_transactions(docs)
            except StorageError as e:
                await self._storage_failed("insert_transactions", e, correlation_id)
                raise
            imported = result.inserted_count
            failed = result.failed
            inserted_ids = list(result.inserted_ids)

        if self._audit_logger:
            await self._audit_logger.log_transactions_imported(
                user_id=user_id,
                imported=imported,
                attempted=len(rows),
                failed=failed,
                correlation_id=correlation_id,
            )

        # Step 6: Adjust the target account
        balance_delta: Optional[Decimal] = None
        if target_account_id:
            balance_delta = sum(
                (signed[i] for i in inserted_ids if i in signed),
                Decimal("0"),
            )
            if inserted_ids and balance_delta != 0:
                try:
                    await self._store.increment_account_balance(
                        target_account_id,
                        user_id,
                        balance_delta,
                    )
                except StorageError as e:
                    await self._storage_failed("increment_account_balance", e, correlation_id)
                    raise
                if self._audit_logger:
                    await self._audit_logger.log_balance_adjusted(
                        user_id=user_id,
                        account_id=target_account_id,
                        delta=str(balance_delta),
                        correlation_id=correlation_id,
                    )

        logger.info(
            "csv_import_completed",
            user_id=user_id,
            imported=imported,
            attempted=len(rows),
            duplicates_skipped=duplicates,
            correlation_id=str(correlation_id),
        )

        return ImportResult(
            imported=imported,
            attempted=len(rows),
            duplicates_skipped=duplicates,
            account_adjusted=bool(target_account_id),
            balance_delta=balance_delta,
            failed=failed,
            inserted_ids=inserted_ids,
        )

    async def _drop_duplicates(
        self,
        user_id: str,
        rows: Sequence[NormalizedRow],
    ) -> list[NormalizedRow]:
        """Rows whose (date, amount, description) isn't already known."""
        existing = await self._store.find_transactions(
            user_id,
            TransactionFilter(
                date_in=sorted({row.date for row in rows}),
                amount_in=sorted({row.magnitude for row in rows}),
            ),
        )
        seen = {
            duplicate_candidate_key(txn.date, txn.amount, txn.description)
            for txn in existing
        }

        fresh = []
        for row in rows:
            key = duplicate_candidate_key(row.date, row.magnitude, row.description)
            if key in seen:
                continue
            seen.add(key)
            fresh.append(row)
        return fresh

    def _to_transaction(
        self,
        user_id: str,
        row: NormalizedRow,
        target_account_id: Optional[str],
    ) -> Transaction:
        from_account_id = row.from_account_id
        to_account_id = row.to_account_id

        if target_account_id and not from_account_id and not to_account_id:
            if row.amount < 0:
                from_account_id = target_account_id
            elif row.amount > 0:
                to_account_id = target_account_id

        return Transaction(
            user_id=user_id,
            type=row.type,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=row.magnitude,
            date=row.date,
            description=row.description,
            category=row.category,
            metadata=row.metadata,
            transaction_key=transaction_key(
                user_id, row.date, row.magnitude, row.description
            ),
        )

    async def _storage_failed(
        self,
        operation: str,
        error: StorageError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    async def _reject(
        self,
        user_id: str,
        reason: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_import_rejected(
                user_id=user_id,
                reason=reason,
                correlation_id=correlation_id,
                details=details,
            )


class TransactionFlow:
    """
    Orchestrates single-transaction edits.

    The transaction key is recomputed from date/amount/description on
    every write, so an edit can never create a silent duplicate.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        validator: Optional[ImportValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator or ImportValidator(store)
        self._audit_logger = audit_logger

    async def create_transaction(
        self,
        user_id: str,
        type: TransactionType,
        amount: Decimal,
        date: Any,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        metadata: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record one transaction.

        Raises:
            TransactionValidationError: Neither account side given
            UnknownAccountError: A side isn't the user's account
            DuplicateError: Same date, amount and description already exist
        """
        txn = Transaction(
            user_id=user_id,
            type=type,
            amount=amount,
            date=date,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            description=description,
            category=category,
            metadata=metadata or {},
        )
        await self._validator.validate_transaction(txn)

        txn = txn.model_copy(update={"transaction_key": txn.computed_key()})
        if await self._store.find_transaction_by_key(user_id, txn.transaction_key):
            raise DuplicateError("Duplicate transaction detected")

        stored = await self._store.insert_transaction(txn)

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                user_id=user_id,
                transaction_id=stored.id,
                correlation_id=correlation_id,
            )
        return stored

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
        **changes: Any,
    ) -> Transaction:
        """
        Apply field changes to an existing transaction.

        Raises:
            NotFoundError: No such transaction for this user
            TransactionValidationError: Unknown field or no account side left
            TransactionKeyConflictError: Another transaction already has the new key
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise TransactionValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}"
            )

        existing = await self._store.get_transaction(user_id, transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        updated = Transaction.model_validate({
            **existing.model_dump(),
            **changes,
            "updated_at": datetime.utcnow(),
        })
        updated = updated.model_copy(update={"transaction_key": updated.computed_key()})
        await self._validator.validate_transaction(updated)

        try:
            stored = await self._store.update_transaction(updated)
        except TransactionKeyConflictError as e:
            if self._audit_logger:
                await self._audit_logger.log_key_conflict(
                    user_id=user_id,
                    transaction_id=transaction_id,
                    conflicting_id=e.conflicting_id,
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            changed = sorted(
                name for name in changes
                if getattr(existing, name) != getattr(stored, name)
            )
            await self._audit_logger.log_transaction_updated(
                user_id=user_id,
                transaction_id=transaction_id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )
        return stored

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a transaction. Returns False if it didn't exist."""
        deleted = await self._store.delete_transaction(user_id, transaction_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                user_id=user_id,
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )
        return deleted


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[ImportFlow, TransactionFlow, LedgerQueryExecutor, LedgerStoreInterface]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets".
                 Defaults to the configured storage backend.

    Returns:
        (import_flow, transaction_flow, query_executor, store)
    """
    backend = backend or get_settings().app.storage_backend

    store: LedgerStoreInterface
    audit_storage: AuditStorageInterface

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            store = GoogleSheetsLedgerStore(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend=backend, error=str(e))
            store = InMemoryLedgerStore()
            audit_storage = InMemoryAuditStorage()
    elif backend == "memory":
        store = InMemoryLedgerStore()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage)
    validator = ImportValidator(store)

    import_flow = ImportFlow(store, validator=validator, audit_logger=audit_logger)
    transaction_flow = TransactionFlow(store, validator=validator, audit_logger=audit_logger)
    query_executor = LedgerQueryExecutor(store, audit_logger=audit_logger)

    return import_flow, transaction_flow, query_executor, store
