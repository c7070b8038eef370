"""CSV ingestion package."""

from ledger_engine.ingest.csv_parser import (
    CsvFormat,
    count_data_lines,
    detect_format,
    normalize_amount,
    normalize_date,
    parse_csv,
    parse_csv_line,
)
from ledger_engine.ingest.rules import (
    DEFAULT_RULES,
    AmountSign,
    TypeInferenceRule,
    infer_type,
)

__all__ = [
    "CsvFormat",
    "count_data_lines",
    "detect_format",
    "normalize_amount",
    "normalize_date",
    "parse_csv",
    "parse_csv_line",
    "DEFAULT_RULES",
    "AmountSign",
    "TypeInferenceRule",
    "infer_type",
]
