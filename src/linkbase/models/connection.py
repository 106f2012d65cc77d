"""Connection model - a person the user met."""

from datetime import datetime

from pydantic import Field

from .base import RecordBase, generate_id
from .fact import Fact


class Connection(RecordBase):
    """A connection in the user's contact list.

    Attributes:
        user_id: Owner of the connection.
        name: Display name.
        met_at: Where the user met this person.
        met_when: When they met, if known.
        facts: Facts loaded with the connection (empty unless requested).
    """

    id: str = Field(default_factory=lambda: generate_id("conn"))
    user_id: str = Field(description="Owning user")
    name: str = Field(min_length=1, max_length=100, description="Display name")
    met_at: str = Field(min_length=1, max_length=200, description="Where they met")
    met_when: datetime | None = Field(default=None, description="When they met")
    facts: list[Fact] = Field(default_factory=list, description="Facts about this connection")

    def __str__(self) -> str:
        return f"Connection({self.name!r}, {len(self.facts)} facts)"
