"""
Diversity-Constrained Packer.

A single-pass, greedy approximation of Maximal Marginal Relevance:

    1. Stable-sort snippets by relevance, highest first.
    2. Walk at most ``max_items`` candidates.
    3. Stop as soon as the next candidate does not fit the available budget.
    4. Otherwise weight its relevance by a diversity multiplier computed
       against everything already selected, and accept it when the result
       exceeds 0.1. Rejected candidates are dropped, not deferred.

Cost is O(n log n) for the sort plus O(n * k) for diversity, with k the
selection size.

Known limitation: step 3 is a hard stop. A later, cheaper candidate that
would still fit is never considered.

Aggregates are prepended whenever they are requested, with no minimum on the
tokens the selection leaves over. The 30% reserve makes room for them and
the final trim enforces the budget.
"""

from __future__ import annotations

from typing import Optional

import structlog

from ..domain import Snippet
from ..config import DEFAULT_MAX_ITEMS

logger = structlog.get_logger(__name__)


# =============================================================================
# DIVERSITY PENALTIES
# =============================================================================

SAME_KIND_PENALTY = 0.8
SIMILAR_AMOUNT_PENALTY = 0.7
SAME_GROUP_PENALTY = 0.6

SIMILAR_AMOUNT_DELTA = 50
MIN_DIVERSITY = 0.1
MIN_COMBINED_SCORE = 0.1


def compute_diversity(candidate: Snippet, selected: list[Snippet]) -> float:
    """
    Multiplier in [0.1, 1.0] measuring how different ``candidate`` is from
    the current selection.

    For every selected snippet:
        x0.8 same kind
        x0.7 both have amounts less than 50 apart
        x0.6 same category or same symbol

    Tags are compared as-is, so a tag missing on both snippets is a match.
    Two transactions (which never carry a symbol) always share the x0.6.
    """
    diversity = 1.0

    for other in selected:
        if other.kind == candidate.kind:
            diversity *= SAME_KIND_PENALTY

        if other.tags.amount is not None and candidate.tags.amount is not None:
            if abs(other.tags.amount - candidate.tags.amount) < SIMILAR_AMOUNT_DELTA:
                diversity *= SIMILAR_AMOUNT_PENALTY

        if (
            other.tags.category == candidate.tags.category
            or other.tags.symbol == candidate.tags.symbol
        ):
            diversity *= SAME_GROUP_PENALTY

    return max(MIN_DIVERSITY, diversity)


def pack_snippets(
    snippets: list[Snippet],
    token_budget: int,
    max_items: Optional[int] = None,
    reserve_for_aggregates: float = 0.0,
) -> list[Snippet]:
    """
    Greedily select a diverse, relevant subset under a token budget.

    Args:
        snippets: Scored snippets
        token_budget: Full token budget for the card
        max_items: Candidate cap (defaults to 50)
        reserve_for_aggregates: Tokens held back for aggregate snippets

    Returns:
        Selected snippets in acceptance order
    """
    ranked = sorted(snippets, key=lambda s: s.relevance, reverse=True)

    available = token_budget - reserve_for_aggregates
    if max_items is None:
        max_items = DEFAULT_MAX_ITEMS
    limit = min(max_items, len(ranked))

    selected: list[Snippet] = []
    used = 0
    dropped = 0

    for candidate in ranked[:limit]:
        if used + candidate.token_count > available:
            break

        combined = candidate.relevance * compute_diversity(candidate, selected)
        if combined > MIN_COMBINED_SCORE:
            selected.append(candidate)
            used += candidate.token_count
        else:
            dropped += 1

    logger.debug(
        "context_packer.selection",
        candidates=len(ranked),
        selected=len(selected),
        dropped=dropped,
        tokens_used=used,
        tokens_available=available,
    )
    return selected
