"""Base models and shared types for the Linkbase memory engine."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class FeatureType(str, Enum):
    """Search domain an embedding may be used in.

    One cache table serves several use-cases; the tag keeps a similarity
    search from matching vectors that belong to another domain.
    """

    FACT = "FACT"
    QUERY_EXPANSION = "QUERY_EXPANSION"


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("fact") -> "fact_a1b2c3d4e5f6"
        generate_id("conn") -> "conn_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RecordBase(BaseModel):
    """Base class for persisted rows."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Unique identifier")
    created_at: datetime = Field(default_factory=utcnow, description="When the row was created")
    updated_at: datetime = Field(
        default_factory=utcnow, description="When the row was last modified"
    )
