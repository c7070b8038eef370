"""
CSV Normalizer

Turns raw CSV text into NormalizedRow candidates.

Two layouts are recognised from the header:

GENERIC (our own export format):
    date,type,amount,description,category,fromAccountId,toAccountId,metadata

BANK STATEMENT (no type column, carries a running balance):
    Date,Description,Amount,Running Bal.

For bank statements the transaction type is inferred per row
(see ledger_engine.ingest.rules).

IMPORTANT: Parsing is lenient at ROW level and strict at FILE level.
- A row with an unusable date or amount, or a description longer than
  MAX_DESCRIPTION_LENGTH, is silently dropped.
- A file without `date` and `amount` columns yields no rows at all.
The normalizer never sorts or deduplicates; that is the import flow's job.
"""

import csv
import json
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Sequence

from ledger_engine.ingest.rules import DEFAULT_RULES, TypeInferenceRule, infer_type
from ledger_engine.models.ledger import MAX_DESCRIPTION_LENGTH, NormalizedRow, TransactionType

BOM = "\ufeff"

RUNNING_BALANCE_COLUMNS = ("running bal", "running bal.", "running balance")
BANK_STATEMENT_COLUMNS = ("date", "description", "amount")
REQUIRED_COLUMNS = ("date", "amount")

DEFAULT_YEAR_PIVOT = 50

_LINE_BREAK = re.compile(r"\r?\n")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})$")


class CsvFormat(str, Enum):
    """Detected CSV layout."""
    GENERIC = "generic"
    BANK_STATEMENT = "bank_statement"


# =============================================================================
# LINE LEVEL
# =============================================================================

def split_lines(text: str) -> list[str]:
    """Strip a leading BOM, split on CRLF/LF and drop blank lines."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    return [line for line in _LINE_BREAK.split(text) if line.strip()]


def count_data_lines(text: str) -> int:
    """Non-blank lines after the header."""
    return max(len(split_lines(text)) - 1, 0)


def parse_csv_line(line: str) -> list[str]:
    """
    Split one CSV line into trimmed fields.

    Double-quoted fields may contain commas and "" escapes.
    """
    for fields in csv.reader([line], skipinitialspace=True):
        return [field.strip() for field in fields]
    return []


def build_header_index(header: Sequence[str]) -> dict[str, int]:
    """Lower-cased column name -> position (first occurrence wins)."""
    index: dict[str, int] = {}
    for position, name in enumerate(header):
        index.setdefault(name.strip().lower(), position)
    return index


def detect_format(columns: dict[str, int]) -> CsvFormat:
    has_running_balance = any(name in columns for name in RUNNING_BALANCE_COLUMNS)
    if has_running_balance and all(name in columns for name in BANK_STATEMENT_COLUMNS):
        return CsvFormat.BANK_STATEMENT
    return CsvFormat.GENERIC


# =============================================================================
# FIELD LEVEL
# =============================================================================

def normalize_date(raw: str, year_pivot: int = DEFAULT_YEAR_PIVOT) -> Optional[date]:
    """
    Parse ISO `YYYY-MM-DD` or US `M/D/YYYY` / `M/D/YY`.

    Two-digit years below `year_pivot` are 20xx, the rest 19xx.
    Returns None for anything else (including impossible dates).
    """
    value = (raw or "").strip()
    if not value:
        return None

    try:
        if _ISO_DATE.match(value):
            return date.fromisoformat(value)

        match = _US_DATE.match(value)
        if match:
            month, day, year = match.groups()
            if len(year) == 2:
                century = 2000 if int(year) < year_pivot else 1900
                full_year = century + int(year)
            else:
                full_year = int(year)
            return date(full_year, int(month), int(day))
    except ValueError:
        return None

    return None


def normalize_amount(raw: str) -> Optional[Decimal]:
    """
    Strip thousands separators and parse.

    None when not a finite number or too large to round to cents.
    """
    value = (raw or "").replace(",", "").strip()
    if not value:
        return None
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            return None
        amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return amount


def parse_metadata(raw: str) -> dict[str, Any]:
    """
    Parse the metadata column as a JSON object.

    Text that is not a JSON object is kept verbatim under "raw".
    """
    value = (raw or "").strip()
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return {"raw": value}
    if isinstance(parsed, dict):
        return parsed
    return {"raw": value}


def _cell(fields: Sequence[str], columns: dict[str, int], name: Optional[str]) -> str:
    position = columns.get(name) if name else None
    if position is None or position >= len(fields):
        return ""
    return fields[position]


def parse_generic_type(raw: str) -> Optional[TransactionType]:
    """Explicit type column; blank means expense, unknown values are unusable."""
    value = (raw or "").strip().lower()
    if not value:
        return TransactionType.EXPENSE
    try:
        return TransactionType(value)
    except ValueError:
        return None


# =============================================================================
# FILE LEVEL
# =============================================================================

def parse_csv(
    text: str,
    rules: Sequence[TypeInferenceRule] = DEFAULT_RULES,
    year_pivot: int = DEFAULT_YEAR_PIVOT,
) -> list[NormalizedRow]:
    """
    Parse CSV text into normalized transaction candidates.

    Args:
        text: Raw CSV text (may start with a BOM)
        rules: Ordered type inference rules for bank statements
        year_pivot: Century pivot for two-digit years

    Returns:
        Rows in file order. Empty when the header lacks `date` or `amount`
        or when no data row survives normalization.
    """
    lines = split_lines(text)
    if len(lines) <= 1:
        return []

    columns = build_header_index(parse_csv_line(lines[0]))
    if not all(name in columns for name in REQUIRED_COLUMNS):
        return []

    csv_format = detect_format(columns)
    running_balance_column = next(
        (name for name in RUNNING_BALANCE_COLUMNS if name in columns),
        None,
    )

    rows = []
    for line in lines[1:]:
        fields = parse_csv_line(line)
        if not fields:
            continue

        row_date = normalize_date(_cell(fields, columns, "date"), year_pivot)
        amount = normalize_amount(_cell(fields, columns, "amount"))
        if row_date is None or amount is None:
            continue

        description = _cell(fields, columns, "description")
        if len(description.strip()) > MAX_DESCRIPTION_LENGTH:
            continue

        if csv_format == CsvFormat.BANK_STATEMENT:
            txn_type = infer_type(amount, description, rules)
        else:
            txn_type = parse_generic_type(_cell(fields, columns, "type"))
            if txn_type is None:
                continue

        metadata = parse_metadata(_cell(fields, columns, "metadata"))
        running_balance = normalize_amount(_cell(fields, columns, running_balance_column))
        if running_balance is not None:
            metadata["runningBalance"] = running_balance

        rows.append(NormalizedRow(
            date=row_date,
            type=txn_type,
            amount=amount,
            description=description,
            category=_cell(fields, columns, "category") or None,
            from_account_id=_cell(fields, columns, "fromaccountid") or None,
            to_account_id=_cell(fields, columns, "toaccountid") or None,
            metadata=metadata,
        ))

    return rows
