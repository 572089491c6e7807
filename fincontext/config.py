"""
Configuration and request options for the Financial Context Core.

Settings    - process-level knobs read from FINCONTEXT_* environment variables
PackOptions - validated options for a single pack_context call
InvocationMeta - who invoked which tool, and when, for evidence building
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .records import ensure_aware


# =============================================================================
# LIMITS
# =============================================================================

MIN_TOKEN_BUDGET = 100
MAX_TOKEN_BUDGET = 4000
DEFAULT_TOKEN_BUDGET = 2500
MAX_ITEMS_LIMIT = 100
DEFAULT_MAX_ITEMS = 50
MAX_QUERY_LENGTH = 500

ENV_PREFIX = "FINCONTEXT_"


class ConfigurationError(Exception):
    """Raised when process settings fail validation."""
    pass


# =============================================================================
# SETTINGS
# =============================================================================

class Settings(BaseModel):
    """Process-level settings."""
    model_config = ConfigDict(frozen=True)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "json"
    service_name: str = "fincontext"
    default_token_budget: int = Field(
        default=DEFAULT_TOKEN_BUDGET, ge=MIN_TOKEN_BUDGET, le=MAX_TOKEN_BUDGET
    )
    max_token_budget: int = Field(
        default=MAX_TOKEN_BUDGET, ge=MIN_TOKEN_BUDGET, le=MAX_TOKEN_BUDGET
    )
    default_max_items: int = Field(default=DEFAULT_MAX_ITEMS, ge=1, le=MAX_ITEMS_LIMIT)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Recognized variables: FINCONTEXT_LOG_LEVEL, FINCONTEXT_LOG_FORMAT,
    FINCONTEXT_SERVICE_NAME, FINCONTEXT_DEFAULT_TOKEN_BUDGET,
    FINCONTEXT_MAX_TOKEN_BUDGET, FINCONTEXT_DEFAULT_MAX_ITEMS.

    Raises:
        ConfigurationError: If any value fails validation
    """
    if environ is None:
        environ = os.environ

    values = {
        name: environ[ENV_PREFIX + name.upper()]
        for name in Settings.model_fields
        if ENV_PREFIX + name.upper() in environ
    }

    try:
        settings = Settings.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if settings.default_token_budget > settings.max_token_budget:
        raise ConfigurationError(
            f"default_token_budget ({settings.default_token_budget}) exceeds "
            f"max_token_budget ({settings.max_token_budget})"
        )
    return settings


# =============================================================================
# PER-CALL OPTIONS
# =============================================================================

class PackOptions(BaseModel):
    """Options for one pack_context call."""
    model_config = ConfigDict(frozen=True)

    query: str = Field(min_length=1, max_length=MAX_QUERY_LENGTH)
    token_budget: int = Field(
        default=DEFAULT_TOKEN_BUDGET, ge=MIN_TOKEN_BUDGET, le=MAX_TOKEN_BUDGET
    )
    max_items: int = Field(default=DEFAULT_MAX_ITEMS, ge=1, le=MAX_ITEMS_LIMIT)
    include_aggregates: bool = True


class InvocationMeta(BaseModel):
    """
    Metadata about the tool invocation that produced a record set.

    ``timestamp`` accepts ISO-8601 strings; naive values are taken as UTC.
    """
    model_config = ConfigDict(frozen=True)

    tool_name: str = Field(min_length=1)
    user_id: str
    timestamp: datetime
    include_aggregations: bool = True
    include_lineage: bool = True
    include_audit_trail: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_aware(value)


def default_pack_options(query: str, settings: Settings, **overrides: Any) -> PackOptions:
    """
    PackOptions seeded from process settings.

    Explicit overrides win, but the token budget is clamped to
    ``settings.max_token_budget``.
    """
    values: dict[str, Any] = {
        "query": query,
        "token_budget": settings.default_token_budget,
        "max_items": settings.default_max_items,
    }
    values.update(overrides)
    if isinstance(values["token_budget"], int):
        values["token_budget"] = min(values["token_budget"], settings.max_token_budget)
    return PackOptions.model_validate(values)


def coerce_pack_options(options: PackOptions | Mapping[str, Any]) -> PackOptions:
    """
    Accept PackOptions or a plain mapping.

    Raises:
        pydantic.ValidationError: If the mapping violates the option limits
    """
    if isinstance(options, PackOptions):
        return options
    return PackOptions.model_validate(dict(options))


def coerce_invocation(invocation: InvocationMeta | Mapping[str, Any]) -> InvocationMeta:
    """Accept InvocationMeta or a plain mapping."""
    if isinstance(invocation, InvocationMeta):
        return invocation
    return InvocationMeta.model_validate(dict(invocation))
