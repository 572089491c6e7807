"""
Token budget helpers and the final Budget Trimmer.

The packer checks candidates against the budget left after reserving room
for aggregates; aggregates are prepended afterwards. ``trim_to_budget`` is
the last pass and the single place that guarantees
``total_tokens <= token_budget``.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..domain import Snippet


# Share of the budget held back for aggregate snippets
AGGREGATE_RESERVE_RATIO = 0.3


def total_tokens(snippets: Iterable[Snippet]) -> int:
    """Sum of token counts."""
    return sum(snippet.token_count for snippet in snippets)


def remaining_tokens(snippets: Iterable[Snippet], token_budget: int) -> int:
    """Tokens left under ``token_budget``, never negative."""
    return max(0, token_budget - total_tokens(snippets))


def aggregate_reserve(token_budget: int, include_aggregates: bool) -> float:
    """Tokens to hold back for aggregates (30% of the budget when requested)."""
    if not include_aggregates:
        return 0.0
    return token_budget * AGGREGATE_RESERVE_RATIO


def trim_to_budget(snippets: Iterable[Snippet], token_budget: int) -> list[Snippet]:
    """
    Keep snippets in order until the next one would overflow the budget.

    Stops at the first overflow; later, smaller snippets are not considered.
    """
    kept: list[Snippet] = []
    used = 0
    for snippet in snippets:
        if used + snippet.token_count > token_budget:
            break
        kept.append(snippet)
        used += snippet.token_count
    return kept
