"""
Evidence Package - the provenance contract for the Financial Context Core.

Every fact shown to a language model must be traceable to the record it
came from. An EvidencePackage carries that trace:

    EvidenceItem       - where a displayed fact came from (a reference, not a copy)
    AggregationRecord  - a computed total or count with its sample size
    DataLineage        - named sources, transformations and upstream dependencies
    AuditTrailEntry    - who invoked which tool, with which parameters

Invariants are enforced at construction time. Violations raise
EvidenceValidationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class AggregationOperation(Enum):
    """Operations an AggregationRecord may describe."""
    SUM = "sum"
    COUNT = "count"
    AVG = "avg"
    MAX = "max"
    MIN = "min"


class SourceType(Enum):
    """Kinds of lineage sources."""
    DATABASE = "database"
    API = "api"
    CACHE = "cache"


class EvidenceValidationError(Exception):
    """Raised when an evidence object fails validation checks."""
    pass


# =============================================================================
# EVIDENCE ITEMS
# =============================================================================

@dataclass(frozen=True)
class EvidenceItem:
    """
    A reference to the source of one displayed fact.

    ``fields`` lists the record fields the fact was built from, so an
    auditor can re-read exactly those columns from ``source_table``.
    """
    source_table: str
    source_id: str
    fields: tuple[str, ...]

    def __post_init__(self):
        if not self.source_table:
            raise EvidenceValidationError("source_table is required")
        if not self.source_id:
            raise EvidenceValidationError("source_id is required")

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_table": self.source_table,
            "source_id": self.source_id,
            "fields": list(self.fields),
        }


@dataclass(frozen=True)
class AggregationRecord:
    """
    A computed aggregation and the sample it was computed over.

    ``group_key`` is set for grouped operations (e.g. count per category).
    """
    source_table: str
    operation: AggregationOperation
    field: str
    value: float
    sample_count: int
    group_key: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.operation, AggregationOperation):
            raise EvidenceValidationError(
                f"operation must be AggregationOperation, got {type(self.operation)}"
            )
        if self.sample_count < 0:
            raise EvidenceValidationError(
                f"sample_count must be non-negative, got {self.sample_count}"
            )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source_table": self.source_table,
            "operation": self.operation.value,
            "field": self.field,
            "value": self.value,
            "sample_count": self.sample_count,
        }
        if self.group_key is not None:
            data["group_key"] = self.group_key
        return data


# =============================================================================
# LINEAGE
# =============================================================================

@dataclass(frozen=True)
class LineageSource:
    """A named upstream source with its freshness timestamp."""
    name: str
    source_type: SourceType
    last_refresh: datetime
    record_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source_type": self.source_type.value,
            "last_refresh": self.last_refresh.isoformat(),
            "record_count": self.record_count,
        }


@dataclass(frozen=True)
class DataLineage:
    """Where the data came from and what was done to it."""
    sources: tuple[LineageSource, ...] = ()
    transformations: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [source.to_dict() for source in self.sources],
            "transformations": list(self.transformations),
            "dependencies": list(self.dependencies),
        }


@dataclass(frozen=True)
class AuditTrailEntry:
    """One tool invocation, recorded for audit."""
    action: str
    timestamp: datetime
    user_id: str
    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)
    records_affected: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "tool": self.tool,
            "parameters": dict(self.parameters),
            "records_affected": self.records_affected,
        }


# =============================================================================
# EVIDENCE PACKAGE
# =============================================================================

@dataclass(frozen=True)
class EvidencePackageMeta:
    """Summary statistics for an evidence package."""
    total_records: int
    distinct_source_tables: frozenset[str]
    confidence_score: float
    generated_at: datetime
    tool_name: str
    tools_used: tuple[str, ...] = ()

    def __post_init__(self):
        if not (0.0 <= self.confidence_score <= 1.0):
            raise EvidenceValidationError(
                f"confidence_score must be in [0.0, 1.0], got {self.confidence_score}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "distinct_source_tables": sorted(self.distinct_source_tables),
            "confidence_score": self.confidence_score,
            "generated_at": self.generated_at.isoformat(),
            "tool_name": self.tool_name,
            "tools_used": list(self.tools_used),
        }


@dataclass(frozen=True)
class EvidencePackage:
    """
    The auditable provenance structure returned alongside a context card.

    ``items`` follows input order, one item per input record.
    """
    query_description: str
    items: tuple[EvidenceItem, ...]
    aggregations: tuple[AggregationRecord, ...]
    lineage: DataLineage
    metadata: EvidencePackageMeta
    audit_trail: tuple[AuditTrailEntry, ...] = ()

    @property
    def confidence_score(self) -> float:
        return self.metadata.confidence_score

    @property
    def distinct_source_tables(self) -> frozenset[str]:
        return self.metadata.distinct_source_tables

    def items_for_table(self, source_table: str) -> list[EvidenceItem]:
        """All evidence items that reference ``source_table``."""
        return [item for item in self.items if item.source_table == source_table]

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_description": self.query_description,
            "items": [item.to_dict() for item in self.items],
            "aggregations": [agg.to_dict() for agg in self.aggregations],
            "lineage": self.lineage.to_dict(),
            "audit_trail": [entry.to_dict() for entry in self.audit_trail],
            "metadata": self.metadata.to_dict(),
        }


# =============================================================================
# FACTORIES
# =============================================================================

def create_sum(
    source_table: str,
    field_name: str,
    values: list[float],
) -> AggregationRecord:
    """
    Create a SUM aggregation rounded to cents.

    ``sample_count`` is the number of values summed.
    """
    return AggregationRecord(
        source_table=source_table,
        operation=AggregationOperation.SUM,
        field=field_name,
        value=round(sum(values), 2),
        sample_count=len(values),
    )


def create_group_count(
    source_table: str,
    field_name: str,
    group_key: str,
    count: int,
    sample_count: int,
) -> AggregationRecord:
    """Create a COUNT aggregation for one group of a grouped field."""
    return AggregationRecord(
        source_table=source_table,
        operation=AggregationOperation.COUNT,
        field=field_name,
        value=float(count),
        sample_count=sample_count,
        group_key=group_key,
    )


def create_empty_package(
    tool_name: str,
    generated_at: datetime,
    query_description: Optional[str] = None,
) -> EvidencePackage:
    """
    Create the minimal valid package: no records, zero confidence.

    Returned whenever evidence cannot be built, so a failure never blocks
    the primary response.
    """
    return EvidencePackage(
        query_description=query_description or tool_name,
        items=(),
        aggregations=(),
        lineage=DataLineage(),
        metadata=EvidencePackageMeta(
            total_records=0,
            distinct_source_tables=frozenset(),
            confidence_score=0.0,
            generated_at=generated_at,
            tool_name=tool_name,
            tools_used=(tool_name,),
        ),
    )
