"""
Snippet Normalizer for the Financial Context Core.

Turns one raw record of unknown shape into a compact, human-readable
Snippet plus the structured tags used later for diversity comparison.

Rendering is deterministic given the record:
    transaction - "$45.50 at Starbucks (Food and Drink) on 2024-01-01"
    account     - "Checking (***1234): $1200.00 depository account"
    holding     - "AAPL: 10 shares of Apple Inc., value $1900.00, P&L +$150.00"
    generic     - "note: hello, source: manual"

Unrecognized shapes never fail; they degrade to a generic summary.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Optional

from ..domain import Snippet, SnippetKind, SnippetTags
from ..records import (
    RecordKind,
    as_record,
    classify_record,
    first_present,
    format_number,
    format_value,
    primary_category,
    to_number,
)


# Word-to-token multiplier. An approximation, not a real tokenizer.
TOKENS_PER_WORD = 1.3

# Generic snippets show at most this many key/value pairs
GENERIC_PAIR_LIMIT = 3

NO_DATA_TEXT = "No data available"


def estimate_tokens(text: str) -> int:
    """
    Estimate the token cost of ``text``.

    ceil(whitespace-delimited word count * 1.3)
    """
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def _source_id(record: Mapping[str, Any]) -> Optional[str]:
    value = record.get("id")
    return None if value is None else str(value)


# =============================================================================
# PER-SHAPE RENDERERS
# =============================================================================

def normalize_transaction(record: Mapping[str, Any]) -> Snippet:
    """Render a transaction-like record."""
    amount = abs(to_number(record.get("amount")))
    merchant = first_present(record, "merchant_name", "description") or "Unknown"
    category = primary_category(record.get("category")) or "Other"
    date = record.get("date") or "Unknown date"

    text = f"${amount:.2f} at {merchant} ({category}) on {date}"

    raw_amount = record.get("amount")
    return Snippet(
        kind=SnippetKind.TRANSACTION,
        text=text,
        token_count=estimate_tokens(text),
        tags=SnippetTags(
            source_id=_source_id(record),
            amount=None if raw_amount is None else to_number(raw_amount),
            date=None if record.get("date") is None else str(record.get("date")),
            category=category,
        ),
    )


def normalize_account(record: Mapping[str, Any]) -> Snippet:
    """Render an account-like record."""
    name = record.get("name") or "Unknown Account"
    account_type = record.get("type") or "account"
    balance = to_number(first_present(record, "balance_current", "balance_available"))
    mask = record.get("mask")

    label = f"{name} (***{mask})" if mask else str(name)
    text = f"{label}: ${balance:.2f} {account_type} account"

    return Snippet(
        kind=SnippetKind.ACCOUNT,
        text=text,
        token_count=estimate_tokens(text),
        tags=SnippetTags(
            source_id=_source_id(record),
            amount=balance,
        ),
    )


def normalize_holding(record: Mapping[str, Any], kind: SnippetKind) -> Snippet:
    """Render a holding- or position-like record."""
    symbol = str(record.get("symbol"))
    name = first_present(record, "security_name", "name") or symbol
    quantity = record.get("quantity")
    quantity = 0 if quantity is None else quantity
    value = to_number(first_present(record, "institution_value", "market_value"))

    text = f"{symbol}: {format_number(quantity)} shares of {name}, value ${value:.2f}"

    pnl = record.get("unrealized_pnl")
    if pnl is not None:
        pnl = to_number(pnl)
        sign = "+" if pnl >= 0 else "-"
        text += f", P&L {sign}${abs(pnl):.2f}"

    return Snippet(
        kind=kind,
        text=text,
        token_count=estimate_tokens(text),
        tags=SnippetTags(
            source_id=_source_id(record),
            amount=value,
            symbol=symbol,
        ),
    )


def normalize_generic(record: Mapping[str, Any]) -> Snippet:
    """Render the first few non-null fields of an unrecognized record."""
    pairs = [
        f"{key}: {format_value(value)}"
        for key, value in record.items()
        if value is not None
    ][:GENERIC_PAIR_LIMIT]

    text = ", ".join(pairs) or NO_DATA_TEXT

    return Snippet(
        kind=SnippetKind.SUMMARY,
        text=text,
        token_count=estimate_tokens(text),
        tags=SnippetTags(source_id=_source_id(record)),
    )


# =============================================================================
# ENTRY POINTS
# =============================================================================

def normalize_record(raw: Any) -> Snippet:
    """
    Convert one raw record into a Snippet with zero relevance.

    Non-mapping inputs are treated as empty records.
    """
    record = as_record(raw)
    kind = classify_record(record)

    if kind is RecordKind.TRANSACTION:
        return normalize_transaction(record)
    if kind is RecordKind.ACCOUNT:
        return normalize_account(record)
    if kind is RecordKind.HOLDING:
        return normalize_holding(record, SnippetKind.HOLDING)
    if kind is RecordKind.POSITION:
        return normalize_holding(record, SnippetKind.POSITION)
    return normalize_generic(record)


def normalize_records(records: list[Any]) -> list[Snippet]:
    """Normalize every record, preserving input order."""
    return [normalize_record(record) for record in records]
