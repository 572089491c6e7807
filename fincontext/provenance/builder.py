"""
Evidence Builder for the Financial Context Core.

Re-derives, from the same raw records handed to the packer, a provenance
package that traces every record to its source table and records which
aggregations were computed over it.

The builder is independent of the context card pipeline: callers may ask
for evidence without asking for a card.

Confidence score (capped at 1.0):
    +0.4  at least one evidence item
    +0.2  more than one distinct source table
    +0.2  at least one aggregation
    +0.2  invocation timestamp within the last hour

An empty record set yields the minimal package with zero confidence.

Failure policy: evidence is best-effort. Any internal error yields a minimal,
empty-but-valid package and is logged, never raised.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from ..config import InvocationMeta, coerce_invocation
from ..evidence import (
    AggregationRecord,
    AuditTrailEntry,
    DataLineage,
    EvidenceItem,
    EvidencePackage,
    EvidencePackageMeta,
    LineageSource,
    SourceType,
    create_empty_package,
    create_group_count,
    create_sum,
)
from ..records import (
    RecordKind,
    classify_record,
    ensure_aware,
    parse_record_date,
    primary_category,
    to_number,
    utc_now,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# SOURCE TABLES
# =============================================================================

TRANSACTIONS = "transactions"
INVESTMENT_TRANSACTIONS = "investment_transactions"
ACCOUNTS = "accounts"
HOLDINGS = "holdings"
CRYPTO_POSITIONS = "crypto_positions"
CRYPTO_ORDERS = "crypto_orders"
UNKNOWN = "unknown"

# Canonical fields per source table, in display order
CANONICAL_FIELDS: dict[str, tuple[str, ...]] = {
    TRANSACTIONS: ("id", "date", "amount", "merchant_name", "category", "account_id"),
    INVESTMENT_TRANSACTIONS: ("id", "date", "amount", "merchant_name", "category", "account_id"),
    ACCOUNTS: ("id", "name", "type", "subtype", "balance_current"),
    HOLDINGS: ("id", "symbol", "quantity", "institution_value", "account_id"),
    CRYPTO_POSITIONS: ("id", "symbol", "quantity", "market_value"),
    CRYPTO_ORDERS: ("id", "symbol", "side", "quantity", "status", "dry_run"),
    UNKNOWN: (),
}

TRANSACTION_TABLES = (TRANSACTIONS, INVESTMENT_TRANSACTIONS)
CRYPTO_TABLES = (CRYPTO_POSITIONS, CRYPTO_ORDERS)
INVESTMENT_TABLES = (HOLDINGS, INVESTMENT_TRANSACTIONS)

# Value field summed per position-like table
VALUE_FIELDS = {
    HOLDINGS: "institution_value",
    CRYPTO_POSITIONS: "market_value",
}

FALLBACK_FIELD_COUNT = 5
FRESHNESS_WINDOW = timedelta(hours=1)

# Lineage naming
PRIMARY_SOURCE_NAME = "ledger-database"
INGESTION_DEPENDENCY = "ingestion-service"
CRYPTO_DEPENDENCY = "crypto-exchange-api"
BANKING_DEPENDENCY = "banking-api"

QUERY_DESCRIPTIONS = {
    "list_accounts": "Retrieved {n} financial accounts",
    "list_transactions": "Retrieved {n} financial transactions",
    "spending_summary": "Generated spending analysis from {n} transactions",
    "get_holdings": "Retrieved {n} investment holdings",
    "get_investment_transactions": "Retrieved {n} investment transactions",
    "get_crypto_positions": "Retrieved {n} cryptocurrency positions",
    "place_crypto_order": "Placed cryptocurrency order",
}


# =============================================================================
# PER-RECORD EVIDENCE
# =============================================================================

def infer_source_table(record: Mapping[str, Any]) -> str:
    """Infer the source table of a record from its shape."""
    kind = classify_record(record)

    if kind is RecordKind.TRANSACTION:
        if record.get("investment_transaction_id"):
            return INVESTMENT_TRANSACTIONS
        return TRANSACTIONS
    if kind is RecordKind.ACCOUNT:
        return ACCOUNTS
    if kind is RecordKind.HOLDING:
        return HOLDINGS
    if kind is RecordKind.POSITION:
        return CRYPTO_POSITIONS
    if record.get("side") and record.get("quantity"):
        return CRYPTO_ORDERS
    return UNKNOWN


def extract_evidence_item(record: Mapping[str, Any]) -> EvidenceItem:
    """
    Build the evidence reference for one record.

    ``fields`` lists the canonical fields present on the record, or the
    record's first five keys when none of them are.
    """
    table = infer_source_table(record)
    present = tuple(f for f in CANONICAL_FIELDS[table] if f in record)
    if not present:
        present = tuple(list(record.keys())[:FALLBACK_FIELD_COUNT])

    source_id = record.get("id") or record.get("_id") or "unknown"

    return EvidenceItem(
        source_table=table,
        source_id=str(source_id),
        fields=present,
    )


# =============================================================================
# AGGREGATIONS
# =============================================================================

def _group_by_table(
    records: list[Mapping[str, Any]],
    tables: list[str],
) -> dict[str, list[Mapping[str, Any]]]:
    """Group records by source table, keeping first-seen table order."""
    groups: dict[str, list[Mapping[str, Any]]] = {}
    for record, table in zip(records, tables):
        groups.setdefault(table, []).append(record)
    return groups


def build_transaction_aggregations(
    table: str,
    records: list[Mapping[str, Any]],
) -> list[AggregationRecord]:
    """
    Sum of absolute amounts, then a count per primary category.

    Categories appear in first-seen order. Records without a category are
    left out of the category counts but still count toward the sum.
    """
    aggregations = [
        create_sum(table, "amount", [abs(to_number(r.get("amount"))) for r in records])
    ]

    category_counts: dict[str, int] = {}
    for record in records:
        category = primary_category(record.get("category"))
        if category is not None:
            category_counts[category] = category_counts.get(category, 0) + 1

    for category, count in category_counts.items():
        aggregations.append(
            create_group_count(table, "category", category, count, len(records))
        )
    return aggregations


def build_aggregations(
    records: list[Mapping[str, Any]],
    tables: list[str],
) -> list[AggregationRecord]:
    """All aggregations for a classified record set."""
    aggregations: list[AggregationRecord] = []
    groups = _group_by_table(records, tables)

    for table, group in groups.items():
        if table in TRANSACTION_TABLES:
            aggregations.extend(build_transaction_aggregations(table, group))

    for table, value_field in VALUE_FIELDS.items():
        group = groups.get(table)
        if group:
            values = [to_number(r.get(value_field)) for r in group]
            aggregations.append(create_sum(table, value_field, values))

    return aggregations


# =============================================================================
# LINEAGE
# =============================================================================

def build_lineage(
    tool_name: str,
    tables: list[str],
    record_count: int,
    refreshed_at: datetime,
) -> DataLineage:
    """
    Describe sources, transformations and dependencies.

    Crypto and investment detection looks at both the record tables and
    the tool name.
    """
    tool = tool_name.lower()
    transformations: list[str] = []
    dependencies = [INGESTION_DEPENDENCY]

    if "summary" in tool:
        transformations.extend(["aggregation", "grouping"])

    if "crypto" in tool or any(t in CRYPTO_TABLES for t in tables):
        transformations.extend(["price_calculation", "pnl_calculation"])
        dependencies.append(CRYPTO_DEPENDENCY)

    if (
        "investment" in tool
        or "holdings" in tool
        or any(t in INVESTMENT_TABLES for t in tables)
    ):
        transformations.extend(["valuation", "performance_metrics"])
        dependencies.append(BANKING_DEPENDENCY)

    return DataLineage(
        sources=(
            LineageSource(
                name=PRIMARY_SOURCE_NAME,
                source_type=SourceType.DATABASE,
                last_refresh=refreshed_at,
                record_count=record_count,
            ),
        ),
        transformations=tuple(transformations),
        dependencies=tuple(dependencies),
    )


# =============================================================================
# CONFIDENCE
# =============================================================================

def calculate_confidence(
    item_count: int,
    distinct_tables: int,
    aggregation_count: int,
    invocation_time: datetime,
    reference_time: Optional[datetime] = None,
) -> float:
    """Confidence in [0, 1] from completeness, breadth, aggregation and freshness."""
    if reference_time is None:
        reference_time = utc_now()

    score = 0.0
    if item_count > 0:
        score += 0.4
    if distinct_tables > 1:
        score += 0.2
    if aggregation_count > 0:
        score += 0.2
    if ensure_aware(invocation_time) > ensure_aware(reference_time) - FRESHNESS_WINDOW:
        score += 0.2

    return min(1.0, round(score, 10))


def describe_query(tool_name: str, record_count: int) -> str:
    """Plain description of what the tool invocation retrieved."""
    template = QUERY_DESCRIPTIONS.get(tool_name)
    if template is None:
        return f"Executed {tool_name} returning {record_count} records"
    return template.format(n=record_count)


# =============================================================================
# ENTRY POINT
# =============================================================================

def _assemble(
    records: list[Any],
    invocation: InvocationMeta,
    reference_time: Optional[datetime],
) -> EvidencePackage:
    if not records:
        return create_empty_package(
            invocation.tool_name,
            invocation.timestamp,
            describe_query(invocation.tool_name, 0),
        )

    mappings = [r for r in records if isinstance(r, Mapping)]
    items = [extract_evidence_item(record) for record in mappings]
    tables = [item.source_table for item in items]

    aggregations: list[AggregationRecord] = []
    if invocation.include_aggregations:
        aggregations = build_aggregations(mappings, tables)

    if invocation.include_lineage:
        lineage = build_lineage(
            invocation.tool_name, tables, len(records), invocation.timestamp
        )
    else:
        lineage = DataLineage()

    audit_trail: tuple[AuditTrailEntry, ...] = ()
    if invocation.include_audit_trail:
        audit_trail = (
            AuditTrailEntry(
                action=f"execute_tool_{invocation.tool_name}",
                timestamp=invocation.timestamp,
                user_id=invocation.user_id,
                tool=invocation.tool_name,
                parameters=dict(invocation.parameters),
                records_affected=len(records),
            ),
        )

    distinct_tables = frozenset(tables)
    confidence = calculate_confidence(
        item_count=len(items),
        distinct_tables=len(distinct_tables),
        aggregation_count=len(aggregations),
        invocation_time=invocation.timestamp,
        reference_time=reference_time,
    )

    return EvidencePackage(
        query_description=describe_query(invocation.tool_name, len(records)),
        items=tuple(items),
        aggregations=tuple(aggregations),
        lineage=lineage,
        audit_trail=audit_trail,
        metadata=EvidencePackageMeta(
            total_records=len(records),
            distinct_source_tables=distinct_tables,
            confidence_score=confidence,
            generated_at=invocation.timestamp,
            tool_name=invocation.tool_name,
            tools_used=(invocation.tool_name,),
        ),
    )


def _fallback_identity(invocation: Any) -> tuple[str, datetime]:
    """Best-effort tool name and timestamp for the minimal package."""
    if isinstance(invocation, InvocationMeta):
        return invocation.tool_name, invocation.timestamp

    tool_name = "unknown"
    generated_at = utc_now()
    if isinstance(invocation, Mapping):
        tool_name = str(invocation.get("tool_name") or tool_name)
        generated_at = parse_record_date(invocation.get("timestamp")) or generated_at
    return tool_name, generated_at


def build_evidence(
    records: list[Any],
    invocation: InvocationMeta | Mapping[str, Any],
    reference_time: Optional[datetime] = None,
) -> EvidencePackage:
    """
    Build the provenance package for a record set.

    Args:
        records: Raw records, in the order they were returned to the caller
        invocation: InvocationMeta or an equivalent mapping
        reference_time: Time for the freshness check (defaults to now)

    Returns:
        EvidencePackage; a minimal empty package if anything goes wrong
    """
    try:
        meta = coerce_invocation(invocation)
        logger.debug(
            "evidence_builder.build",
            tool_name=meta.tool_name,
            user_id=meta.user_id,
            record_count=len(records),
        )
        return _assemble(list(records), meta, reference_time)
    except Exception as e:
        tool_name, generated_at = _fallback_identity(invocation)
        logger.error(
            "evidence_builder.failed",
            tool_name=tool_name,
            error_type=type(e).__name__,
            error=str(e),
            exc_info=True,
        )
        return create_empty_package(tool_name, generated_at)
