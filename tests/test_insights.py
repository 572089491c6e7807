"""
Tests for query intent, card insights and quality metrics.
"""

import pytest
from datetime import datetime, timezone

from fincontext import pack_context
from fincontext.config import PackOptions
from fincontext.domain import (
    STRATEGY_MMR_TEMPORAL,
    ContextCard,
    ContextCardMeta,
    Snippet,
    SnippetKind,
    empty_card,
)
from fincontext.insights import (
    QueryType,
    Timeframe,
    analyze_query_intent,
    calculate_quality_metrics,
    generate_insights,
)


REFERENCE_TIME = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_card(snippets: list, token_budget: int = 1000, original_count: int = 10) -> ContextCard:
    included = sum(1 for s in snippets if s.kind is not SnippetKind.SUMMARY)
    return ContextCard(
        query="test",
        snippets=tuple(snippets),
        total_tokens=sum(s.token_count for s in snippets),
        compression_ratio=included / original_count,
        metadata=ContextCardMeta(
            original_count=original_count,
            included_count=included,
            token_budget=token_budget,
            strategy_name=STRATEGY_MMR_TEMPORAL,
            generated_at=REFERENCE_TIME,
        ),
    )


def make_snippet(kind: SnippetKind, text: str = "x", token_count: int = 10,
                 relevance: float = 1.0) -> Snippet:
    return Snippet(kind=kind, text=text, token_count=token_count, relevance=relevance)


# =============================================================================
# QUERY INTENT
# =============================================================================

class TestQueryIntent:
    """Tests for keyword-based intent analysis."""

    def test_plain_search(self):
        intent = analyze_query_intent("coffee shops")

        assert intent.query_type is QueryType.SEARCH
        assert intent.entities == []
        assert intent.timeframe is Timeframe.ANY
        assert intent.confidence == 0.5

    def test_summary_with_entity_and_timeframe(self):
        intent = analyze_query_intent("How much did I spend at Starbucks last month?")

        assert intent.query_type is QueryType.SUMMARY
        assert intent.entities == ["starbucks"]
        assert intent.timeframe is Timeframe.RECENT
        assert intent.confidence == 1.0

    def test_summary_wins_over_analysis(self):
        assert analyze_query_intent("total spending trend").query_type is QueryType.SUMMARY

    def test_comparison_and_specific_date(self):
        intent = analyze_query_intent("compare btc versus eth on 2025-03-04")

        assert intent.query_type is QueryType.COMPARISON
        assert intent.entities == ["btc", "eth"]
        assert intent.timeframe is Timeframe.SPECIFIC

    def test_historical(self):
        assert analyze_query_intent("dining in 2023").timeframe is Timeframe.HISTORICAL


# =============================================================================
# INSIGHTS
# =============================================================================

class TestInsights:
    """Tests for card insights."""

    def test_empty_card(self):
        card = empty_card("q", 0, 1000, STRATEGY_MMR_TEMPORAL, REFERENCE_TIME)
        intent = analyze_query_intent("q")

        assert generate_insights(card, intent) == ["No relevant data found for this query"]

    def test_efficient_diverse_card(self):
        card = make_card([
            make_snippet(SnippetKind.SUMMARY, "Summary: spent", relevance=10),
            make_snippet(SnippetKind.TRANSACTION, "$5.00 at Starbucks", relevance=3),
            make_snippet(SnippetKind.ACCOUNT, "Checking"),
        ])
        intent = analyze_query_intent("total at starbucks")

        insights = generate_insights(card, intent)

        assert "Efficiently packed context using only 30 of 1000 available tokens" in insights
        assert any(i.startswith("High compression applied") for i in insights)
        assert "Found 3 different types of financial data (summary, transaction, account)" in insights
        assert "2 items have high relevance to your query" in insights
        assert "Summary data available in context" in insights
        assert "Found data related to: starbucks" in insights

    def test_near_limit(self):
        card = make_card([make_snippet(SnippetKind.ACCOUNT, token_count=95)], token_budget=100)
        insights = generate_insights(card, analyze_query_intent("q"))

        assert any(i.startswith("Context is near token limit") for i in insights)


# =============================================================================
# QUALITY METRICS
# =============================================================================

class TestQualityMetrics:
    """Tests for packing quality scores."""

    def test_scores(self):
        card = make_card(
            [
                make_snippet(SnippetKind.TRANSACTION, token_count=40, relevance=3.0),
                make_snippet(SnippetKind.ACCOUNT, token_count=40, relevance=1.5),
            ],
            token_budget=100,
        )
        options = PackOptions(query="q", token_budget=100, max_items=4)

        metrics = calculate_quality_metrics(card, options, record_count=10)

        assert metrics.relevance_score == 0.75
        assert metrics.diversity_score == 0.5
        assert metrics.completeness_score == 0.5
        assert metrics.efficiency_score == 0.8
        assert metrics.overall_quality == pytest.approx(0.64)

    def test_empty_card(self):
        card = empty_card("q", 0, 100, STRATEGY_MMR_TEMPORAL, REFERENCE_TIME)
        options = PackOptions(query="q", token_budget=100)

        metrics = calculate_quality_metrics(card, options, record_count=0)

        assert metrics.relevance_score == 0.0
        assert metrics.completeness_score == 1.0
        assert metrics.efficiency_score == 0.6

    def test_bounds_on_packed_card(self):
        records = [
            {"id": f"t{i}", "amount": i * 10, "date": "2024-05-20",
             "merchant_name": "Starbucks", "category": ["Coffee"]}
            for i in range(20)
        ]
        options = PackOptions(query="starbucks", token_budget=300)
        card = pack_context(records, options, REFERENCE_TIME)

        metrics = calculate_quality_metrics(card, options, len(records))

        for value in metrics.to_dict().values():
            assert 0.0 <= value <= 1.0
