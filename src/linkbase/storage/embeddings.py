"""Cached embedding rows.

The cache table is append-only: rows are inserted on a miss and only
their feature tags change afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from linkbase.models import generate_id
from linkbase.storage.retry import pg_retry

from .base import EMBEDDING_COLUMNS
from .similarity import to_vector_literal

if TYPE_CHECKING:
    import asyncpg

    from linkbase.models import CachedEmbedding, FeatureType


class EmbeddingCacheMixin:
    """Mixin providing cached embedding operations for LinkbaseStorage.

    This mixin expects the following attributes/methods from the base class:
    - _acquire(conn) -> async context manager yielding a connection
    - _row_to_cached_embedding(row) -> CachedEmbedding
    - _embedding_dim: int
    """

    _acquire: Any
    _row_to_cached_embedding: Any
    _embedding_dim: int

    @pg_retry
    async def get_cached_embedding(
        self, text: str, conn: asyncpg.Connection | None = None
    ) -> CachedEmbedding | None:
        """Look up a cached embedding by exact text."""
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"SELECT {EMBEDDING_COLUMNS} FROM cached_embedding WHERE text = $1",
                text,
            )
        return self._row_to_cached_embedding(row) if row else None

    @pg_retry
    async def get_many_cached_embeddings(
        self, texts: list[str], conn: asyncpg.Connection | None = None
    ) -> list[CachedEmbedding]:
        """Look up cached embeddings for several texts in one query.

        Returns only the texts that are cached, in no particular order.
        """
        if not texts:
            return []
        async with self._acquire(conn) as c:
            rows = await c.fetch(
                f"SELECT {EMBEDDING_COLUMNS} FROM cached_embedding WHERE text = ANY($1::text[])",
                list(texts),
            )
        return [self._row_to_cached_embedding(row) for row in rows]

    @pg_retry
    async def save_cached_embedding(
        self,
        text: str,
        vector: list[float],
        feature: FeatureType,
        conn: asyncpg.Connection | None = None,
    ) -> tuple[CachedEmbedding, bool]:
        """Insert a cache row, or fetch the existing one for the same text.

        On conflict the stored vector wins and ``feature`` is added to its
        tags. Safe to retry.

        Returns:
            Tuple of (stored row, whether this call inserted it).
        """
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"""
                INSERT INTO cached_embedding (id, text, embedding, feature_tags)
                VALUES ($1, $2, $3::vector, ARRAY[$4::embedding_feature_type])
                ON CONFLICT (text) DO UPDATE SET
                    feature_tags = CASE
                        WHEN $4::embedding_feature_type = ANY(cached_embedding.feature_tags)
                            THEN cached_embedding.feature_tags
                        ELSE array_append(cached_embedding.feature_tags, $4::embedding_feature_type)
                    END,
                    updated_at = now()
                RETURNING {EMBEDDING_COLUMNS}, (xmax = 0) AS inserted
                """,
                generate_id("emb"),
                text,
                to_vector_literal(vector, self._embedding_dim),
                feature.value,
            )
        return self._row_to_cached_embedding(row), bool(row["inserted"])

    @pg_retry
    async def tag_cached_embedding(
        self,
        embedding_id: str,
        feature: FeatureType,
        conn: asyncpg.Connection | None = None,
    ) -> None:
        """Add a feature tag to a cache row if it is missing."""
        async with self._acquire(conn) as c:
            await c.execute(
                """
                UPDATE cached_embedding
                SET feature_tags = array_append(feature_tags, $2::embedding_feature_type),
                    updated_at = now()
                WHERE id = $1 AND NOT ($2::embedding_feature_type = ANY(feature_tags))
                """,
                embedding_id,
                feature.value,
            )
