"""Tests for transaction identity keys."""

import re
from datetime import date
from decimal import Decimal

from ledger_engine.dedup import canonical_amount, duplicate_candidate_key, transaction_key
from ledger_engine.models.ledger import Transaction, TransactionType


class TestTransactionKey:
    """Tests for the persisted SHA-256 key."""

    def test_is_64_hex_chars(self):
        """Test the key is a lowercase hex SHA-256 digest."""
        key = transaction_key("user-1", "2024-01-05", Decimal("12.50"), "Coffee")
        assert re.fullmatch(r"[0-9a-f]{64}", key)

    def test_deterministic(self):
        """Test the same inputs always give the same key."""
        first = transaction_key("user-1", date(2024, 1, 5), Decimal("12.50"), "Coffee")
        second = transaction_key("user-1", date(2024, 1, 5), Decimal("12.50"), "Coffee")
        assert first == second

    def test_description_case_and_whitespace_ignored(self):
        """Test description is trimmed and lower-cased."""
        assert transaction_key("u", "2024-01-05", 5, "  COFFEE Shop ") == transaction_key(
            "u", "2024-01-05", 5, "coffee shop"
        )

    def test_amount_formatting_ignored(self):
        """Test 12.5, "12.50" and Decimal("12.500") collide."""
        keys = {
            transaction_key("u", "2024-01-05", value, "x")
            for value in (12.5, "12.50", Decimal("12.500"), Decimal("12.5"))
        }
        assert len(keys) == 1

    def test_date_object_and_iso_string_collide(self):
        """Test a date and its ISO string produce the same key."""
        assert transaction_key("u", date(2024, 1, 5), 1, None) == transaction_key("u", " 2024-01-05 ", 1, None)

    def test_missing_description_same_as_empty(self):
        """Test None and "" are the same description."""
        assert transaction_key("u", "2024-01-05", 1) == transaction_key("u", "2024-01-05", 1, "")

    def test_user_is_part_of_identity(self):
        """Test two users never share a key."""
        assert transaction_key("alice", "2024-01-05", 1, "x") != transaction_key("bob", "2024-01-05", 1, "x")

    def test_other_fields_do_not_participate(self):
        """Test type and accounts don't change the key."""
        expense = Transaction(
            user_id="u",
            type=TransactionType.EXPENSE,
            from_account_id="chk",
            amount=Decimal("9.99"),
            date=date(2024, 1, 5),
            description="Lunch",
        )
        transfer = expense.model_copy(update={
            "type": TransactionType.TRANSFER,
            "to_account_id": "sav",
            "category": "Food",
        })
        assert expense.computed_key() == transfer.computed_key()
        assert expense.computed_key() == transaction_key("u", "2024-01-05", "9.99", "lunch")


class TestCanonicalAmount:
    """Tests for two-decimal rounding."""

    def test_half_up(self):
        """Test halves round away from zero."""
        assert canonical_amount(Decimal("1.005")) == "1.01"
        assert canonical_amount("2.675") == "2.68"

    def test_pads_to_two_places(self):
        """Test whole numbers gain cents."""
        assert canonical_amount(7) == "7.00"


class TestDuplicateCandidateKey:
    """Tests for the un-hashed comparison key."""

    def test_format(self):
        """Test the date|amount|description layout."""
        assert duplicate_candidate_key(date(2024, 1, 5), Decimal("12.5"), " Coffee ") == "2024-01-05|12.50|coffee"

    def test_agrees_with_hashed_key(self):
        """Test equal candidate keys imply equal transaction keys."""
        a = ("2024-01-05", Decimal("3"), "Rent")
        b = (date(2024, 1, 5), "3.00", "RENT ")
        assert duplicate_candidate_key(*a) == duplicate_candidate_key(*b)
        assert transaction_key("u", *a) == transaction_key("u", *b)
