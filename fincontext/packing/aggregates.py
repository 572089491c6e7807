"""
Aggregate Synthesizer.

Derives summary snippets from the full record set, not from the selected
snippets. Summaries carry a fixed relevance of 10 so they always outrank
record snippets, and are prepended to the packer's selection.
"""

from __future__ import annotations

from typing import Any

from ..domain import Snippet, SnippetKind, SnippetTags
from ..normalization.normalizer import estimate_tokens
from ..records import as_record, is_transaction_like, to_number


SUMMARY_RELEVANCE = 10.0


def synthesize_spending_summary(records: list[Any]) -> list[Snippet]:
    """
    Summarize spending and income across transaction-like records.

    Positive amounts are spending, negative amounts are income.
    Returns an empty list when there are no transactions.
    """
    transactions = [as_record(record) for record in records if is_transaction_like(record)]
    if not transactions:
        return []

    amounts = [to_number(t.get("amount")) for t in transactions]
    spent = sum(amount for amount in amounts if amount > 0)
    income = sum(abs(amount) for amount in amounts if amount < 0)

    text = (
        f"Summary: ${spent:.2f} spent, ${income:.2f} income "
        f"from {len(transactions)} transactions"
    )

    return [
        Snippet(
            kind=SnippetKind.SUMMARY,
            text=text,
            token_count=estimate_tokens(text),
            relevance=SUMMARY_RELEVANCE,
            tags=SnippetTags(amount=spent),
        )
    ]


def synthesize_aggregates(records: list[Any]) -> list[Snippet]:
    """All aggregate snippets for a record set, in the order they are prepended."""
    return synthesize_spending_summary(records)
