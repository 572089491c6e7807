"""
Record Classification for the Financial Context Core.

Input records arrive as loosely-typed mappings from whatever data-access
layer fetched them. Their shape is the only identity they carry, so both
the snippet normalizer and the evidence builder dispatch on the same
classifier defined here.

Discrimination order (first match wins):
    TRANSACTION - ``amount`` present and ``date`` set
    ACCOUNT     - ``balance_current`` or ``balance_available`` present
    HOLDING     - ``quantity`` present, ``symbol`` set, ``security_id`` set
    POSITION    - ``quantity`` present, ``symbol`` set
    GENERIC     - anything else
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional


class RecordKind(Enum):
    """The closed set of record shapes the core understands."""
    TRANSACTION = "transaction"
    ACCOUNT = "account"
    HOLDING = "holding"
    POSITION = "position"
    GENERIC = "generic"


EMPTY_RECORD: Mapping[str, Any] = {}


def as_record(raw: Any) -> Mapping[str, Any]:
    """Return ``raw`` if it is a mapping, otherwise an empty mapping."""
    if isinstance(raw, Mapping):
        return raw
    return EMPTY_RECORD


def classify_record(record: Mapping[str, Any]) -> RecordKind:
    """
    Map a loosely-typed record to one of the known shapes.

    Presence checks on ``amount``, ``balance_*`` and ``quantity`` look at the
    key only, so an explicit null still marks the shape. ``date`` and
    ``symbol`` must carry a truthy value.
    """
    if "amount" in record and record.get("date"):
        return RecordKind.TRANSACTION

    if "balance_current" in record or "balance_available" in record:
        return RecordKind.ACCOUNT

    if "quantity" in record and record.get("symbol"):
        if record.get("security_id"):
            return RecordKind.HOLDING
        return RecordKind.POSITION

    return RecordKind.GENERIC


def is_transaction_like(record: Any) -> bool:
    """Check whether a raw record would classify as a transaction."""
    return classify_record(as_record(record)) is RecordKind.TRANSACTION


# =============================================================================
# FIELD HELPERS
# =============================================================================

def first_present(record: Mapping[str, Any], *keys: str) -> Any:
    """Return the first truthy value among ``keys``, or None."""
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


def to_number(value: Any) -> float:
    """
    Coerce a record value to a float.

    None becomes 0.0. Anything float() cannot digest raises, which callers
    surface as an internal failure.
    """
    if value is None:
        return 0.0
    return float(value)


def primary_category(value: Any) -> Optional[str]:
    """Return the leading category of a list-valued or scalar category field."""
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    if value:
        return str(value)
    return None


def format_number(value: Any) -> str:
    """Render a number without a trailing ``.0`` when it is integral."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_value(value: Any) -> str:
    """
    Render an arbitrary field value for a generic snippet.

    Booleans render lower-case, sequences comma-joined without spaces and
    with null elements blank, numbers through ``format_number``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(item) for item in value)
    return format_number(value)


def parse_record_date(value: Any) -> Optional[datetime]:
    """
    Parse a record date into an aware UTC datetime.

    Accepts datetime and date objects as well as ISO-8601 strings such as
    ``2024-01-01`` or ``2024-01-01T10:00:00Z``. Naive values are treated as
    UTC. Returns None when the value cannot be parsed.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime) -> datetime:
    """Attach UTC to a naive datetime."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
