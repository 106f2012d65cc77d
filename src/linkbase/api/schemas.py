"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from linkbase.models import Connection, ConnectionMatch, Fact, ScoredFact


class ConnectionCreateRequest(BaseModel):
    """Request body for creating a connection.

    Attributes:
        name: Display name.
        met_at: Where the user met this person.
        met_when: When they met, if known.
        facts: Initial fact texts.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100, description="Display name")
    met_at: str = Field(min_length=1, max_length=200, description="Where they met")
    met_when: datetime | None = Field(default=None, description="When they met")
    facts: list[str] = Field(default_factory=list, description="Initial facts")


class ConnectionUpdateRequest(BaseModel):
    """Request body for updating a connection.

    Omitted fields are left unchanged. ``facts``, when given, replaces the
    connection's fact set.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    met_at: str | None = Field(default=None, min_length=1, max_length=200)
    met_when: datetime | None = None
    facts: list[str] | None = None


class ConnectionListResponse(BaseModel):
    """Response model for listing connections."""

    model_config = ConfigDict(extra="forbid")

    connections: list[Connection]
    count: int


class FactsAddRequest(BaseModel):
    """Request body for adding facts to a connection."""

    model_config = ConfigDict(extra="forbid")

    texts: list[str] = Field(min_length=1, description="Fact texts to add")


class FactsUpsertRequest(BaseModel):
    """Request body for reconciling a connection's facts.

    Attributes:
        texts: The desired fact set.
        with_delete: Delete stored facts that are not in ``texts``.
    """

    model_config = ConfigDict(extra="forbid")

    texts: list[str] = Field(default_factory=list, description="Desired fact texts")
    with_delete: bool = Field(default=True, description="Delete facts not in texts")


class FactUpdateRequest(BaseModel):
    """Request body for changing a fact's text."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1, description="New fact text")


class FactsResponse(BaseModel):
    """Response model for fact mutations."""

    model_config = ConfigDict(extra="forbid")

    facts: list[Fact]
    count: int


class DeleteResponse(BaseModel):
    """Response model for deletes."""

    model_config = ConfigDict(extra="forbid")

    deleted: int = Field(ge=0, description="Number of rows deleted")


class FactSearchResponse(BaseModel):
    """Response model for fact search.

    Attributes:
        facts: One page of matching facts.
        next_cursor: Opaque token for the next page, if any.
    """

    model_config = ConfigDict(extra="forbid")

    facts: list[ScoredFact]
    next_cursor: str | None = None


class ConnectionSearchResponse(BaseModel):
    """Response model for connection search.

    Attributes:
        connections: One page of ranked connections.
        next_cursor: Offset of the next page, if any.
    """

    model_config = ConfigDict(extra="forbid")

    connections: list[ConnectionMatch]
    next_cursor: str | None = None


class HealthResponse(BaseModel):
    """Response model for health check."""

    model_config = ConfigDict(extra="forbid")

    status: str
    version: str
    storage_connected: bool
