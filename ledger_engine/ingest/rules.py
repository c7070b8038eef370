"""
Transaction type inference for bank-statement CSVs.

Bank statements have no `type` column; the type is guessed from the
amount's sign and keywords in the description.

DESIGN DECISION: The rules are DATA, not control flow.
They are evaluated in order and the first match wins, so supporting
a new bank or payroll processor means appending a keyword or a rule.
"""

import re
from decimal import Decimal
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, Field

from ledger_engine.models.ledger import TransactionType


class AmountSign(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    ZERO = "zero"

    @classmethod
    def of(cls, amount: Decimal) -> "AmountSign":
        if amount > 0:
            return cls.POSITIVE
        if amount < 0:
            return cls.NEGATIVE
        return cls.ZERO


class TypeInferenceRule(BaseModel):
    """
    Assign `type` when the amount has `sign` and the description
    matches any of `patterns` (case-insensitive regular expressions).
    """

    name: str
    sign: AmountSign
    patterns: tuple[str, ...] = Field(..., min_length=1)
    type: TransactionType

    def matches(self, sign: AmountSign, description: str) -> bool:
        if sign != self.sign:
            return False
        return any(re.search(p, description, re.IGNORECASE) for p in self.patterns)


DEFAULT_RULES: tuple[TypeInferenceRule, ...] = (
    TypeInferenceRule(
        name="deposit",
        sign=AmountSign.POSITIVE,
        patterns=(
            r"deposit",
            r"dir dep",
            r"direct dep",
            r"cash reward",
            r"zelle payment from",
            # Payroll processors
            r"\bpayroll\b",
            r"\badp\b",
            r"\bpaychex\b",
            r"\bgusto\b",
        ),
        type=TransactionType.INCOME_DEPOSIT,
    ),
    TypeInferenceRule(
        name="payment",
        sign=AmountSign.NEGATIVE,
        patterns=(
            r"online banking payment",
            r"payment",
            r"pmt",
            r"repay",
        ),
        type=TransactionType.PAYMENT,
    ),
)

# Used when no rule matches
FALLBACK_TYPES: dict[AmountSign, TransactionType] = {
    AmountSign.POSITIVE: TransactionType.ADJUSTMENT,
    AmountSign.NEGATIVE: TransactionType.EXPENSE,
    AmountSign.ZERO: TransactionType.ADJUSTMENT,
}


def infer_type(
    amount: Decimal,
    description: str,
    rules: Sequence[TypeInferenceRule] = DEFAULT_RULES,
) -> TransactionType:
    """First matching rule wins; otherwise fall back on the sign."""
    sign = AmountSign.of(amount)
    for rule in rules:
        if rule.matches(sign, description or ""):
            return rule.type
    return FALLBACK_TYPES[sign]
