"""
Relevance Scorer for the Financial Context Core.

A heuristic bag-of-tokens score, not TF-IDF. Every point can be traced to
one of four components:

    exact_match    +1.0 per query token found verbatim in the snippet
    partial_match  +0.5 per (query token, snippet token) pair where either
                   is a substring of the other
    recency        +0.5 when the snippet's date is within 30 days
    high_value     +0.3 when abs(amount) > 1000

An exact match is also a partial match, so it earns 1.5 in total.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..domain import Snippet
from ..records import ensure_aware, parse_record_date, utc_now


# =============================================================================
# SCORING CONSTANTS
# =============================================================================

EXACT_MATCH_POINTS = 1.0
PARTIAL_MATCH_POINTS = 0.5
RECENCY_POINTS = 0.5
HIGH_VALUE_POINTS = 0.3

RECENCY_WINDOW = timedelta(days=30)
HIGH_VALUE_THRESHOLD = 1000

_NON_WORD = re.compile(r"\W+")


def tokenize(text: str) -> list[str]:
    """Lower-case ``text`` and split on non-word characters, dropping empties."""
    return [token for token in _NON_WORD.split(text.lower()) if token]


# =============================================================================
# COMPONENT SCORES
# =============================================================================

@dataclass
class ComponentScore:
    """
    A single relevance component.

    name:         What this component measures
    raw_value:    The underlying measurement (match count, age in days, ...)
    contribution: Points added to the relevance score
    reason:       Human-readable explanation
    """
    name: str
    raw_value: float
    contribution: float
    reason: str


def compute_exact_match(query_tokens: list[str], snippet_tokens: list[str]) -> ComponentScore:
    """+1 for each query token present among the snippet tokens."""
    present = set(snippet_tokens)
    matches = [token for token in query_tokens if token in present]
    points = len(matches) * EXACT_MATCH_POINTS

    if matches:
        reason = f"Query terms found verbatim: {', '.join(matches)} (+{points:g})"
    else:
        reason = "No query term found verbatim"

    return ComponentScore(
        name="exact_match",
        raw_value=float(len(matches)),
        contribution=points,
        reason=reason,
    )


def compute_partial_match(query_tokens: list[str], snippet_tokens: list[str]) -> ComponentScore:
    """+0.5 for each token pair where one contains the other."""
    # TODO: revisit the exact/partial double count once there are relevance
    # judgements to tune against.
    pairs = 0
    for query_token in query_tokens:
        for snippet_token in snippet_tokens:
            if query_token in snippet_token or snippet_token in query_token:
                pairs += 1
    points = pairs * PARTIAL_MATCH_POINTS

    return ComponentScore(
        name="partial_match",
        raw_value=float(pairs),
        contribution=points,
        reason=f"{pairs} overlapping token pairs (+{points:g})",
    )


def compute_recency(snippet: Snippet, reference_time: datetime) -> ComponentScore:
    """+0.5 when the snippet's date tag is no more than 30 days old."""
    parsed = parse_record_date(snippet.tags.date)
    if parsed is None:
        return ComponentScore(
            name="recency",
            raw_value=0.0,
            contribution=0.0,
            reason="No usable date",
        )

    age = reference_time - parsed
    days_old = age / timedelta(days=1)

    if age <= RECENCY_WINDOW:
        return ComponentScore(
            name="recency",
            raw_value=days_old,
            contribution=RECENCY_POINTS,
            reason=f"Recent item ({days_old:.0f} days old, +{RECENCY_POINTS:g})",
        )
    return ComponentScore(
        name="recency",
        raw_value=days_old,
        contribution=0.0,
        reason=f"Older item ({days_old:.0f} days old, no recency bonus)",
    )


def compute_high_value(snippet: Snippet) -> ComponentScore:
    """+0.3 when the snippet's amount exceeds 1000 in magnitude."""
    amount = snippet.tags.amount
    if amount is not None and abs(amount) > HIGH_VALUE_THRESHOLD:
        return ComponentScore(
            name="high_value",
            raw_value=abs(amount),
            contribution=HIGH_VALUE_POINTS,
            reason=f"High-value item (${abs(amount):.2f}, +{HIGH_VALUE_POINTS:g})",
        )
    return ComponentScore(
        name="high_value",
        raw_value=0.0 if amount is None else abs(amount),
        contribution=0.0,
        reason="Amount below high-value threshold",
    )


# =============================================================================
# BREAKDOWN
# =============================================================================

@dataclass
class RelevanceBreakdown:
    """Complete decomposition of one snippet's relevance score."""
    exact_match: ComponentScore
    partial_match: ComponentScore
    recency: ComponentScore
    high_value: ComponentScore

    @property
    def components(self) -> list[ComponentScore]:
        return [self.exact_match, self.partial_match, self.recency, self.high_value]

    @property
    def total_score(self) -> float:
        """Sum of all component contributions, in scoring order."""
        total = 0.0
        for component in self.components:
            total += component.contribution
        return total

    def get_positive_contributors(self) -> list[ComponentScore]:
        return [c for c in self.components if c.contribution > 0]


def explain_relevance(
    snippet: Snippet,
    query: str,
    reference_time: Optional[datetime] = None,
) -> RelevanceBreakdown:
    """
    Score one snippet against a query and keep every component.

    Args:
        snippet: A normalized snippet
        query: Free-text query
        reference_time: Time for the recency check (defaults to now)
    """
    reference_time = utc_now() if reference_time is None else ensure_aware(reference_time)

    query_tokens = tokenize(query)
    snippet_tokens = tokenize(snippet.text)

    return RelevanceBreakdown(
        exact_match=compute_exact_match(query_tokens, snippet_tokens),
        partial_match=compute_partial_match(query_tokens, snippet_tokens),
        recency=compute_recency(snippet, reference_time),
        high_value=compute_high_value(snippet),
    )


def score_snippet(
    snippet: Snippet,
    query: str,
    reference_time: Optional[datetime] = None,
) -> float:
    """Relevance score of one snippet."""
    return explain_relevance(snippet, query, reference_time).total_score


def score_snippets(
    snippets: list[Snippet],
    query: str,
    reference_time: Optional[datetime] = None,
) -> list[Snippet]:
    """
    Attach relevance scores to every snippet.

    Returns new snippets in input order; the inputs are untouched.
    """
    if reference_time is None:
        reference_time = utc_now()

    return [
        snippet.with_relevance(score_snippet(snippet, query, reference_time))
        for snippet in snippets
    ]
