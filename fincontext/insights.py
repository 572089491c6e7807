"""
Context card insights.

Deterministic, keyword-driven readings of a query and of the card packed
for it. Nothing here generates prose about the user's finances; the
insights describe the packing itself (coverage, compression, diversity).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import PackOptions
from .domain import ContextCard, SnippetKind


class QueryType(Enum):
    SEARCH = "search"
    SUMMARY = "summary"
    ANALYSIS = "analysis"
    COMPARISON = "comparison"


class Timeframe(Enum):
    RECENT = "recent"
    HISTORICAL = "historical"
    SPECIFIC = "specific"
    ANY = "any"


# Keyword tables, checked in order
SUMMARY_KEYWORDS = ["summary", "total", "how much"]
ANALYSIS_KEYWORDS = ["analyze", "trend", "pattern"]
COMPARISON_KEYWORDS = ["compare", "vs", "versus"]

RECENT_KEYWORDS = ["last", "recent", "this month"]
HISTORICAL_KEYWORDS = ["year", "2023", "2024"]
_SPECIFIC_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")

KNOWN_ENTITIES = [
    "starbucks", "amazon", "grocery", "gas", "dining",
    "btc", "eth", "stock", "investment",
]

# A snippet above this relevance counts as highly relevant
HIGH_RELEVANCE_THRESHOLD = 2
# Number of snippet kinds a fully diverse card is expected to show
EXPECTED_KIND_COUNT = 4


@dataclass
class QueryIntent:
    """What a query is asking for, as far as keywords can tell."""
    query_type: QueryType
    entities: list[str]
    timeframe: Timeframe
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_type": self.query_type.value,
            "entities": list(self.entities),
            "timeframe": self.timeframe.value,
            "confidence": self.confidence,
        }


@dataclass
class QualityMetrics:
    """Packing quality scores, each in [0, 1] and rounded to 2 places."""
    relevance_score: float
    diversity_score: float
    completeness_score: float
    efficiency_score: float
    overall_quality: float

    def to_dict(self) -> dict[str, float]:
        return {
            "relevance_score": self.relevance_score,
            "diversity_score": self.diversity_score,
            "completeness_score": self.completeness_score,
            "efficiency_score": self.efficiency_score,
            "overall_quality": self.overall_quality,
        }


# =============================================================================
# QUERY INTENT
# =============================================================================

def _classify_query_type(query: str) -> QueryType:
    if any(kw in query for kw in SUMMARY_KEYWORDS):
        return QueryType.SUMMARY
    if any(kw in query for kw in ANALYSIS_KEYWORDS):
        return QueryType.ANALYSIS
    if any(kw in query for kw in COMPARISON_KEYWORDS):
        return QueryType.COMPARISON
    return QueryType.SEARCH


def _classify_timeframe(query: str) -> Timeframe:
    if any(kw in query for kw in RECENT_KEYWORDS):
        return Timeframe.RECENT
    if any(kw in query for kw in HISTORICAL_KEYWORDS):
        return Timeframe.HISTORICAL
    if _SPECIFIC_DATE.search(query):
        return Timeframe.SPECIFIC
    return Timeframe.ANY


def analyze_query_intent(query: str) -> QueryIntent:
    """
    Classify a query by type, mentioned entities and timeframe.

    Confidence starts at 0.5 and gains 0.2 for named entities, 0.2 for a
    timeframe and 0.1 for a non-search query type.
    """
    lowered = query.lower()

    query_type = _classify_query_type(lowered)
    entities = [entity for entity in KNOWN_ENTITIES if entity in lowered]
    timeframe = _classify_timeframe(lowered)

    confidence = 0.5
    if entities:
        confidence += 0.2
    if timeframe is not Timeframe.ANY:
        confidence += 0.2
    if query_type is not QueryType.SEARCH:
        confidence += 0.1

    return QueryIntent(
        query_type=query_type,
        entities=entities,
        timeframe=timeframe,
        confidence=round(confidence, 2),
    )


# =============================================================================
# INSIGHTS
# =============================================================================

def generate_insights(card: ContextCard, intent: QueryIntent) -> list[str]:
    """Short observations about how the card was packed."""
    if card.is_empty:
        return ["No relevant data found for this query"]

    insights: list[str] = []
    budget = card.metadata.token_budget

    if card.total_tokens < budget * 0.5:
        insights.append(
            f"Efficiently packed context using only {card.total_tokens} "
            f"of {budget} available tokens"
        )
    elif card.total_tokens > budget * 0.9:
        insights.append(
            "Context is near token limit - consider narrowing your query "
            "for more detailed results"
        )

    if card.compression_ratio < 0.3:
        insights.append(
            "High compression applied - showing most relevant subset of available data"
        )

    kinds = card.kinds()
    if len(kinds) > 2:
        names = ", ".join(kind.value for kind in kinds)
        insights.append(f"Found {len(kinds)} different types of financial data ({names})")

    high_relevance = [
        s for s in card.snippets if s.relevance > HIGH_RELEVANCE_THRESHOLD
    ]
    if high_relevance:
        insights.append(f"{len(high_relevance)} items have high relevance to your query")

    if intent.query_type is QueryType.SUMMARY and SnippetKind.SUMMARY in kinds:
        insights.append("Summary data available in context")

    if intent.entities:
        found = [
            entity for entity in intent.entities
            if any(entity in s.text.lower() for s in card.snippets)
        ]
        if found:
            insights.append(f"Found data related to: {', '.join(found)}")

    return insights


# =============================================================================
# QUALITY METRICS
# =============================================================================

def calculate_quality_metrics(
    card: ContextCard,
    options: PackOptions,
    record_count: int,
) -> QualityMetrics:
    """
    Score a packed card.

    relevance    - mean snippet relevance / 3, capped at 1
    diversity    - distinct snippet kinds / 4, capped at 1
    completeness - snippets kept / min(max_items, record_count)
    efficiency   - 1.0 above 90% budget use, 0.8 above 50%, else 0.6
    """
    snippets = card.snippets

    mean_relevance = (
        sum(s.relevance for s in snippets) / len(snippets) if snippets else 0.0
    )
    relevance = min(1.0, mean_relevance / 3)

    diversity = min(1.0, len(card.kinds()) / EXPECTED_KIND_COUNT)

    requested = min(options.max_items, record_count)
    completeness = min(1.0, len(snippets) / requested) if requested > 0 else 1.0

    utilization = card.total_tokens / options.token_budget
    if utilization > 0.9:
        efficiency = 1.0
    elif utilization > 0.5:
        efficiency = 0.8
    else:
        efficiency = 0.6

    overall = (relevance + diversity + completeness + efficiency) / 4

    return QualityMetrics(
        relevance_score=round(relevance, 2),
        diversity_score=round(diversity, 2),
        completeness_score=round(completeness, 2),
        efficiency_score=round(efficiency, 2),
        overall_quality=round(overall, 2),
    )
