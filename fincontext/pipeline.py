"""
Pipeline Orchestrator for the Financial Context Core.

Context card flow:
    1. Normalize every record into a Snippet
    2. Score snippets against the query
    3. Pack a diverse subset under the budget (minus the aggregate reserve)
    4. Prepend aggregate snippets when requested
    5. Trim to the full token budget

Evidence is built separately from the same records; ``assemble_context``
returns both together with query intent, insights and quality metrics.

Each call is a pure function of its inputs and the clock. No state is kept
between calls.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from .config import InvocationMeta, PackOptions, coerce_pack_options
from .domain import (
    STRATEGY_ERROR,
    STRATEGY_MMR_TEMPORAL,
    ContextCard,
    ContextCardMeta,
    empty_card,
)
from .evidence import EvidencePackage
from .insights import (
    QualityMetrics,
    QueryIntent,
    analyze_query_intent,
    calculate_quality_metrics,
    generate_insights,
)
from .normalization.normalizer import normalize_records
from .packing.aggregates import synthesize_aggregates
from .packing.budget import aggregate_reserve, total_tokens, trim_to_budget
from .packing.packer import pack_snippets
from .provenance.builder import build_evidence
from .ranking.relevance import score_snippets
from .records import ensure_aware, utc_now

logger = structlog.get_logger(__name__)


# =============================================================================
# CONTEXT CARD
# =============================================================================

def _pack(
    records: list[Any],
    options: PackOptions,
    reference_time: datetime,
) -> ContextCard:
    original_count = len(records)

    if original_count == 0:
        return empty_card(
            query=options.query,
            original_count=0,
            token_budget=options.token_budget,
            strategy_name=STRATEGY_MMR_TEMPORAL,
            generated_at=reference_time,
        )

    snippets = normalize_records(records)
    scored = score_snippets(snippets, options.query, reference_time)

    selected = pack_snippets(
        scored,
        token_budget=options.token_budget,
        max_items=options.max_items,
        reserve_for_aggregates=aggregate_reserve(
            options.token_budget, options.include_aggregates
        ),
    )

    aggregates = synthesize_aggregates(records) if options.include_aggregates else []
    final = trim_to_budget(aggregates + selected, options.token_budget)

    # trim_to_budget keeps a prefix, so any aggregates kept lead the list
    aggregate_count = min(len(final), len(aggregates))
    included_count = len(final) - aggregate_count

    return ContextCard(
        query=options.query,
        snippets=tuple(final),
        total_tokens=total_tokens(final),
        compression_ratio=included_count / original_count,
        metadata=ContextCardMeta(
            original_count=original_count,
            included_count=included_count,
            aggregate_count=aggregate_count,
            token_budget=options.token_budget,
            strategy_name=STRATEGY_MMR_TEMPORAL,
            generated_at=reference_time,
        ),
    )


def pack_context(
    records: list[Any],
    options: PackOptions | Mapping[str, Any],
    reference_time: Optional[datetime] = None,
) -> ContextCard:
    """
    Pack records into a token-bounded, diversity-selected context card.

    Args:
        records: Raw records of any shape
        options: PackOptions or an equivalent mapping
        reference_time: Clock reading for recency and timestamps
            (defaults to now)

    Returns:
        ContextCard. Internal failures return an empty card whose
        strategy name is "error".

    Raises:
        pydantic.ValidationError: If ``options`` is a mapping that violates
            the option limits. Nothing is packed in that case.
    """
    options = coerce_pack_options(options)
    reference_time = utc_now() if reference_time is None else ensure_aware(reference_time)
    records = list(records or [])

    logger.info(
        "context_packer.pack",
        query=options.query[:50],
        record_count=len(records),
        token_budget=options.token_budget,
    )

    try:
        return _pack(records, options, reference_time)
    except Exception as e:
        logger.error(
            "context_packer.failed",
            query=options.query[:50],
            record_count=len(records),
            error_type=type(e).__name__,
            error=str(e),
            exc_info=True,
        )
        return empty_card(
            query=options.query,
            original_count=len(records),
            token_budget=options.token_budget,
            strategy_name=STRATEGY_ERROR,
            generated_at=reference_time,
        )


# =============================================================================
# COMBINED RESPONSE
# =============================================================================

@dataclass
class ContextBundle:
    """
    Everything the tool layer returns for a context request.

    ``evidence`` is None when no invocation metadata was supplied.
    """
    card: ContextCard
    query_intent: QueryIntent
    insights: list[str]
    quality: QualityMetrics
    evidence: Optional[EvidencePackage] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "card": self.card.to_dict(),
            "query_intent": self.query_intent.to_dict(),
            "insights": list(self.insights),
            "quality": self.quality.to_dict(),
            "evidence": None if self.evidence is None else self.evidence.to_dict(),
        }


def assemble_context(
    records: list[Any],
    options: PackOptions | Mapping[str, Any],
    invocation: Optional[InvocationMeta | Mapping[str, Any]] = None,
    reference_time: Optional[datetime] = None,
) -> ContextBundle:
    """
    Pack a context card and, when ``invocation`` is given, its evidence.

    The card and the evidence are derived independently from ``records``.
    """
    options = coerce_pack_options(options)
    records = list(records or [])

    card = pack_context(records, options, reference_time)
    intent = analyze_query_intent(options.query)

    evidence = None
    if invocation is not None:
        evidence = build_evidence(records, invocation, reference_time)

    return ContextBundle(
        card=card,
        query_intent=intent,
        insights=generate_insights(card, intent),
        quality=calculate_quality_metrics(card, options, len(records)),
        evidence=evidence,
    )
