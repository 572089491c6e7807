"""
Tests for record classification and snippet normalization.

These tests verify:
1. Shape discrimination order (transaction, account, holding, position, generic)
2. Exact snippet text per shape
3. Token estimation (ceil(words * 1.3))
4. Graceful degradation for unrecognized and non-mapping inputs
"""

import pytest
from datetime import date, datetime, timezone

from fincontext.domain import SnippetKind
from fincontext.records import (
    RecordKind,
    classify_record,
    format_number,
    format_value,
    parse_record_date,
    primary_category,
)
from fincontext.normalization.normalizer import (
    NO_DATA_TEXT,
    estimate_tokens,
    normalize_record,
    normalize_records,
)


# =============================================================================
# TEST FIXTURES
# =============================================================================

def make_transaction(**overrides) -> dict:
    record = {
        "id": "txn_1",
        "amount": 45.50,
        "date": "2024-01-01",
        "merchant_name": "Starbucks",
        "category": ["Food and Drink", "Coffee"],
    }
    record.update(overrides)
    return record


def make_holding(**overrides) -> dict:
    record = {
        "id": "hold_1",
        "symbol": "AAPL",
        "security_id": "sec_aapl",
        "security_name": "Apple Inc.",
        "quantity": 10,
        "institution_value": 1900,
        "unrealized_pnl": 150,
    }
    record.update(overrides)
    return record


# =============================================================================
# CLASSIFICATION
# =============================================================================

class TestClassification:
    """Tests for the shared record classifier."""

    def test_transaction_needs_amount_and_date(self):
        assert classify_record({"amount": 1, "date": "2024-01-01"}) is RecordKind.TRANSACTION
        assert classify_record({"amount": 1}) is RecordKind.GENERIC
        assert classify_record({"amount": 1, "date": ""}) is RecordKind.GENERIC

    def test_null_amount_still_marks_transaction(self):
        """Key presence is what counts for amount."""
        assert classify_record({"amount": None, "date": "2024-01-01"}) is RecordKind.TRANSACTION

    def test_account_by_either_balance(self):
        assert classify_record({"balance_current": 10}) is RecordKind.ACCOUNT
        assert classify_record({"balance_available": None}) is RecordKind.ACCOUNT

    def test_holding_vs_position(self):
        assert classify_record(make_holding()) is RecordKind.HOLDING
        assert classify_record({"symbol": "BTC", "quantity": 1}) is RecordKind.POSITION

    def test_quantity_without_symbol_is_generic(self):
        assert classify_record({"quantity": 3}) is RecordKind.GENERIC

    def test_first_match_wins(self):
        """A record with both amount/date and a balance is a transaction."""
        record = {"amount": 5, "date": "2024-01-01", "balance_current": 100}
        assert classify_record(record) is RecordKind.TRANSACTION


class TestFieldHelpers:
    """Tests for record field helpers."""

    def test_primary_category(self):
        assert primary_category(["Travel", "Airlines"]) == "Travel"
        assert primary_category("Travel") == "Travel"
        assert primary_category([]) is None
        assert primary_category(None) is None

    def test_format_number_drops_integral_fraction(self):
        assert format_number(10.0) == "10"
        assert format_number(0.5) == "0.5"
        assert format_number(7) == "7"

    def test_format_value_for_generic_fields(self):
        assert format_value(True) == "true"
        assert format_value(False) == "false"
        assert format_value(["a", "b"]) == "a,b"
        assert format_value([1.0, None, 2.5]) == "1,,2.5"
        assert format_value(3.0) == "3"
        assert format_value("text") == "text"

    def test_parse_record_date_variants(self):
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert parse_record_date("2024-01-01") == expected
        assert parse_record_date("2024-01-01T00:00:00Z") == expected
        assert parse_record_date(date(2024, 1, 1)) == expected
        assert parse_record_date(datetime(2024, 1, 1)) == expected

    def test_parse_record_date_rejects_garbage(self):
        assert parse_record_date("not a date") is None
        assert parse_record_date(None) is None
        assert parse_record_date(12345) is None


# =============================================================================
# TOKEN ESTIMATION
# =============================================================================

class TestEstimateTokens:
    """Tests for the word-count token estimator."""

    def test_empty_text(self):
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        # 10 words * 1.3 = 13
        assert estimate_tokens("one two three four five six seven eight nine ten") == 13
        # 1 word * 1.3 = 1.3 -> 2
        assert estimate_tokens("hello") == 2

    def test_collapses_whitespace(self):
        assert estimate_tokens("  a   b\n c ") == estimate_tokens("a b c")


# =============================================================================
# RENDERING
# =============================================================================

class TestTransactionSnippet:
    """Tests for transaction rendering."""

    def test_reference_text(self):
        snippet = normalize_record(make_transaction())

        assert snippet.kind is SnippetKind.TRANSACTION
        assert snippet.text == "$45.50 at Starbucks (Food and Drink) on 2024-01-01"
        # 8 words * 1.3 = 10.4 -> 11
        assert snippet.token_count == 11
        assert snippet.relevance == 0.0

    def test_tags(self):
        snippet = normalize_record(make_transaction())

        assert snippet.tags.source_id == "txn_1"
        assert snippet.tags.amount == 45.5
        assert snippet.tags.date == "2024-01-01"
        assert snippet.tags.category == "Food and Drink"
        assert snippet.tags.symbol is None

    def test_income_renders_magnitude_but_keeps_signed_tag(self):
        snippet = normalize_record(make_transaction(amount=-2000, merchant_name="Payroll"))

        assert snippet.text.startswith("$2000.00 at Payroll")
        assert snippet.tags.amount == -2000.0

    def test_fallbacks(self):
        record = make_transaction(merchant_name=None, description="ACH DEBIT", category=None)
        assert normalize_record(record).text == "$45.50 at ACH DEBIT (Other) on 2024-01-01"

        record = make_transaction(merchant_name="", category=[])
        assert normalize_record(record).text == "$45.50 at Unknown (Other) on 2024-01-01"


class TestAccountSnippet:
    """Tests for account rendering."""

    def test_with_mask(self):
        snippet = normalize_record({
            "id": "acc_1",
            "name": "Checking",
            "mask": "1234",
            "type": "depository",
            "balance_current": 1200,
        })

        assert snippet.kind is SnippetKind.ACCOUNT
        assert snippet.text == "Checking (***1234): $1200.00 depository account"
        assert snippet.tags.amount == 1200.0

    def test_without_mask_uses_available_balance(self):
        snippet = normalize_record({
            "name": "Savings",
            "type": "depository",
            "balance_current": None,
            "balance_available": 300.25,
        })

        assert snippet.text == "Savings: $300.25 depository account"

    def test_defaults(self):
        snippet = normalize_record({"balance_current": None})
        assert snippet.text == "Unknown Account: $0.00 account account"


class TestHoldingSnippet:
    """Tests for holding and position rendering."""

    def test_holding_with_profit(self):
        snippet = normalize_record(make_holding())

        assert snippet.kind is SnippetKind.HOLDING
        assert snippet.text == "AAPL: 10 shares of Apple Inc., value $1900.00, P&L +$150.00"
        assert snippet.tags.symbol == "AAPL"
        assert snippet.tags.amount == 1900.0

    def test_position_with_loss(self):
        snippet = normalize_record({
            "symbol": "BTC",
            "quantity": 0.5,
            "market_value": 20000,
            "unrealized_pnl": -500,
        })

        assert snippet.kind is SnippetKind.POSITION
        assert snippet.text == "BTC: 0.5 shares of BTC, value $20000.00, P&L -$500.00"

    def test_zero_pnl_is_shown(self):
        snippet = normalize_record(make_holding(unrealized_pnl=0))
        assert snippet.text.endswith("P&L +$0.00")

    def test_missing_pnl_is_omitted(self):
        snippet = normalize_record(make_holding(unrealized_pnl=None))
        assert "P&L" not in snippet.text


class TestGenericSnippet:
    """Tests for the generic fallback."""

    def test_first_three_non_null_pairs(self):
        snippet = normalize_record({
            "note": "hello",
            "skipped": None,
            "source": "manual",
            "count": 1.0,
            "extra": "ignored",
        })

        assert snippet.kind is SnippetKind.SUMMARY
        assert snippet.text == "note: hello, source: manual, count: 1"

    def test_booleans_and_lists(self):
        snippet = normalize_record({"active": True, "tags": ["a", "b"], "archived": False})
        assert snippet.text == "active: true, tags: a,b, archived: false"

    def test_empty_record(self):
        snippet = normalize_record({})
        assert snippet.text == NO_DATA_TEXT
        assert snippet.token_count == 4

    @pytest.mark.parametrize("raw", [None, "garbage", 42, ["a", "b"]])
    def test_non_mapping_input_never_fails(self, raw):
        assert normalize_record(raw).text == NO_DATA_TEXT


class TestNormalizeRecords:
    """Tests for batch normalization."""

    def test_one_snippet_per_record_in_order(self):
        records = [make_transaction(), {"balance_current": 5}, make_holding(), {}]
        snippets = normalize_records(records)

        assert [s.kind for s in snippets] == [
            SnippetKind.TRANSACTION,
            SnippetKind.ACCOUNT,
            SnippetKind.HOLDING,
            SnippetKind.SUMMARY,
        ]
