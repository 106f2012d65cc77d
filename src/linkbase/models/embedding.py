"""Cached embedding models."""

from pydantic import BaseModel, ConfigDict, Field

from .base import FeatureType, RecordBase, generate_id


class CachedEmbedding(RecordBase):
    """A stored embedding vector, keyed by its exact source text.

    Rows are shared: many facts, across connections and users, may point
    at the same cached vector. Rows are never deleted.

    Attributes:
        text: Exact text the vector was computed from (not normalized).
        embedding: The vector.
        feature_tags: Search domains allowed to use this vector.
    """

    id: str = Field(default_factory=lambda: generate_id("emb"))
    text: str = Field(description="Exact source text")
    embedding: list[float] = Field(description="Embedding vector")
    feature_tags: list[FeatureType] = Field(
        default_factory=list,
        description="Search domains this embedding is tagged for",
    )

    def has_feature(self, feature: FeatureType) -> bool:
        """Check whether this embedding is tagged for a search domain."""
        return feature in self.feature_tags


class TextEmbedding(BaseModel):
    """Result of resolving a text through the embedding cache.

    Attributes:
        text: The text that was resolved.
        embedding: Its vector.
        cached_embedding_id: ID of the cache row holding the vector.
        is_fresh: True if this call inserted the cache row; False on a hit or
            when a concurrent request stored the text first.
    """

    model_config = ConfigDict(extra="forbid")

    text: str
    embedding: list[float]
    cached_embedding_id: str
    is_fresh: bool = False

    @classmethod
    def from_cached(cls, cached: CachedEmbedding, is_fresh: bool = False) -> "TextEmbedding":
        """Build from a cache row."""
        return cls(
            text=cached.text,
            embedding=cached.embedding,
            cached_embedding_id=cached.id,
            is_fresh=is_fresh,
        )
