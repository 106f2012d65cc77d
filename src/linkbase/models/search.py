"""Search request and result models."""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from linkbase.exceptions import ValidationError

from .connection import Connection
from .fact import ScoredFact


class SearchCursor(BaseModel):
    """Keyset pagination position for fact search.

    Built from the last fact of a page. Never persisted; callers receive it
    as an opaque token and hand it back unchanged.

    Attributes:
        last_fact_id: ID of the last fact returned on the previous page.
        similarity_value: That fact's similarity, when the page came from a search.
        last_created_at: That fact's creation time. Kept in the token so the
            position survives the fact being deleted before the next page.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    last_fact_id: str = Field(min_length=1)
    similarity_value: float | None = None
    last_created_at: datetime | None = None

    def encode(self) -> str:
        """Serialize to a URL-safe opaque token."""
        payload: dict[str, object] = {"i": self.last_fact_id}
        if self.similarity_value is not None:
            payload["s"] = self.similarity_value
        if self.last_created_at is not None:
            payload["t"] = self.last_created_at.isoformat()
        raw = json.dumps(payload, separators=(",", ":")).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str) -> SearchCursor:
        """Parse a token produced by encode().

        Raises:
            ValidationError: If the token is malformed.
        """
        padded = token + "=" * (-len(token) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
            return cls(
                last_fact_id=payload["i"],
                similarity_value=payload.get("s"),
                last_created_at=payload.get("t"),
            )
        except (binascii.Error, ValueError, KeyError, TypeError, PydanticValidationError) as e:
            raise ValidationError("cursor", "malformed pagination cursor") from e


class SearchFactsResult(BaseModel):
    """One page of fact search results."""

    model_config = ConfigDict(extra="forbid")

    facts: list[ScoredFact] = Field(default_factory=list)
    next_cursor: SearchCursor | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


class ConnectionMatch(BaseModel):
    """A connection ranked by its best-matching fact.

    Attributes:
        connection: The connection (its ``facts`` field is left empty).
        facts: All of the connection's facts, most similar first.
        top_similarity: Similarity of the best-matching fact.
    """

    model_config = ConfigDict(extra="forbid")

    connection: Connection
    facts: list[ScoredFact] = Field(default_factory=list)
    top_similarity: float


class SearchConnectionsResult(BaseModel):
    """Connections ranked by top fact similarity."""

    model_config = ConfigDict(extra="forbid")

    connections: list[ConnectionMatch] = Field(default_factory=list)
