"""
Core Domain Objects for the Financial Context Core.

Domain Objects:
    Snippet      - A normalized, scored rendering of one input record
    SnippetTags  - Structured fields used for diversity comparison
    ContextCard  - The token-bounded, diversity-selected set of snippets

All objects are frozen. A Snippet gains its relevance score exactly once,
through ``with_relevance``, which returns a new object.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SnippetKind(Enum):
    """Kinds of snippets a context card may contain."""
    TRANSACTION = "transaction"
    ACCOUNT = "account"
    HOLDING = "holding"
    POSITION = "position"
    SUMMARY = "summary"


# Strategy names reported in card metadata
STRATEGY_MMR_TEMPORAL = "mmr_temporal"
STRATEGY_ERROR = "error"


# =============================================================================
# SNIPPET
# =============================================================================

@dataclass(frozen=True)
class SnippetTags:
    """
    Structured fields extracted from a record.

    Every field is optional. Diversity comparison treats a category or
    symbol missing on both snippets as equal.
    """
    source_id: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    category: Optional[str] = None
    symbol: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("source_id", self.source_id),
                ("amount", self.amount),
                ("date", self.date),
                ("category", self.category),
                ("symbol", self.symbol),
            )
            if value is not None
        }


@dataclass(frozen=True)
class Snippet:
    """
    A normalized textual rendering of one financial record.

    Created by the normalizer with zero relevance, scored once by the
    relevance scorer, then selected or discarded by the packer.
    """
    kind: SnippetKind
    text: str
    token_count: int
    relevance: float = 0.0
    tags: SnippetTags = field(default_factory=SnippetTags)

    def with_relevance(self, relevance: float) -> Snippet:
        """Return a copy carrying the given relevance score."""
        return replace(self, relevance=relevance)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "text": self.text,
            "token_count": self.token_count,
            "relevance": self.relevance,
            "tags": self.tags.to_dict(),
        }


# =============================================================================
# CONTEXT CARD
# =============================================================================

@dataclass(frozen=True)
class ContextCardMeta:
    """
    Packing statistics for a context card.

    ``included_count`` counts snippets derived from input records.
    Synthesized summaries are counted in ``aggregate_count``.
    """
    original_count: int
    included_count: int
    token_budget: int
    strategy_name: str
    generated_at: datetime
    aggregate_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_count": self.original_count,
            "included_count": self.included_count,
            "aggregate_count": self.aggregate_count,
            "token_budget": self.token_budget,
            "strategy_name": self.strategy_name,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class ContextCard:
    """
    A token-bounded selection of snippets for grounding a language model.

    INVARIANTS:
        total_tokens <= metadata.token_budget
        metadata.included_count <= min(max_items, metadata.original_count)
    """
    query: str
    snippets: tuple[Snippet, ...]
    total_tokens: int
    compression_ratio: float
    metadata: ContextCardMeta

    @property
    def is_empty(self) -> bool:
        return not self.snippets

    def kinds(self) -> list[SnippetKind]:
        """Distinct snippet kinds in selection order."""
        seen: list[SnippetKind] = []
        for snippet in self.snippets:
            if snippet.kind not in seen:
                seen.append(snippet.kind)
        return seen

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "snippets": [snippet.to_dict() for snippet in self.snippets],
            "total_tokens": self.total_tokens,
            "compression_ratio": self.compression_ratio,
            "metadata": self.metadata.to_dict(),
        }


def empty_card(
    query: str,
    original_count: int,
    token_budget: int,
    strategy_name: str,
    generated_at: datetime,
) -> ContextCard:
    """Create a card with no snippets."""
    return ContextCard(
        query=query,
        snippets=(),
        total_tokens=0,
        compression_ratio=0.0,
        metadata=ContextCardMeta(
            original_count=original_count,
            included_count=0,
            token_budget=token_budget,
            strategy_name=strategy_name,
            generated_at=generated_at,
        ),
    )
