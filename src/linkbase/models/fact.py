"""Fact model - a short user-authored note attached to a connection."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import RecordBase, generate_id


class Fact(RecordBase):
    """A fact about a connection.

    Owned by exactly one connection and deleted with it. The embedding is
    referenced, not owned: deleting a fact leaves the cache row in place.

    Attributes:
        text: The fact as the user wrote it (trimmed).
        connection_id: Owning connection.
        embedding_id: Cache row holding the vector for ``text``.
    """

    id: str = Field(default_factory=lambda: generate_id("fact"))
    text: str = Field(description="Fact text")
    connection_id: str = Field(description="Owning connection")
    embedding_id: str = Field(description="Referenced cached embedding")

    def __str__(self) -> str:
        """String representation showing truncated text."""
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        return f"Fact({preview!r})"


class ScoredFact(BaseModel):
    """A fact returned by search.

    ``similarity`` is None when facts are listed without a search topic.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    text: str
    connection_id: str
    embedding_id: str | None = None
    similarity: float | None = None
    created_at: datetime | None = None
