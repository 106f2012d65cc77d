"""Persistent embedding cache keyed by exact text.

Wraps an Embedder with the ``cached_embedding`` table so the same text is
only ever sent to the provider once. Unlike an in-process LRU, the cache
is shared by every process and request, grows without eviction, and each
row carries feature tags that scope which searches may use it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from linkbase.models import CachedEmbedding, FeatureType, TextEmbedding

if TYPE_CHECKING:
    from linkbase.storage import LinkbaseStorage

    from .base import Embedder

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """Resolve texts to embeddings, computing only on a cache miss.

    Example:
        ```python
        cache = EmbeddingCache(storage, OpenAIEmbedder())

        # First call hits the provider and stores the vector
        first = await cache.get_embedding("likes coffee")
        assert first.is_fresh

        # Second call returns the stored row
        second = await cache.get_embedding("likes coffee")
        assert not second.is_fresh
        assert second.embedding == first.embedding
        ```
    """

    def __init__(self, storage: LinkbaseStorage, embedder: Embedder) -> None:
        """Initialize the cache.

        Args:
            storage: Storage holding the cached_embedding table.
            embedder: Provider used on a cache miss.
        """
        self._storage = storage
        self._embedder = embedder
        self._hits = 0
        self._misses = 0

    @property
    def embedder(self) -> Embedder:
        """The provider consulted on a miss."""
        return self._embedder

    async def get_embedding(
        self,
        text: str,
        feature: FeatureType = FeatureType.FACT,
    ) -> TextEmbedding:
        """Resolve a single text.

        Args:
            text: Exact text to resolve. Not normalized.
            feature: Search domain the caller will use the embedding in.

        Returns:
            TextEmbedding with ``is_fresh`` True only when this call inserted the row.

        Raises:
            EmbeddingProviderError: If the text was not cached and the provider failed.
        """
        cached = await self._storage.get_cached_embedding(text)
        if cached is not None:
            self._hits += 1
            await self._ensure_tagged(cached, feature)
            return TextEmbedding.from_cached(cached, is_fresh=False)

        self._misses += 1
        return await self._compute(text, feature)

    async def get_many_embeddings(
        self,
        texts: list[str],
        feature: FeatureType = FeatureType.FACT,
    ) -> list[TextEmbedding]:
        """Resolve several texts, returning results in input order.

        Cached texts are fetched in one query. Missing texts are sent to
        the provider one at a time, once per distinct text.

        Args:
            texts: Texts to resolve. Duplicates resolve to the same row.
            feature: Search domain the caller will use the embeddings in.

        Returns:
            One TextEmbedding per input text, in the order of ``texts``.

        Raises:
            EmbeddingProviderError: If any missing text fails to embed. Texts
                computed before the failure stay cached.
        """
        if not texts:
            return []

        distinct = list(dict.fromkeys(texts))
        existing = await self._storage.get_many_cached_embeddings(distinct)

        resolved: dict[str, TextEmbedding] = {}
        for cached in existing:
            if cached.text in resolved:
                continue
            await self._ensure_tagged(cached, feature)
            resolved[cached.text] = TextEmbedding.from_cached(cached, is_fresh=False)
        self._hits += len(resolved)

        to_compute = [text for text in distinct if text not in resolved]
        self._misses += len(to_compute)
        for text in to_compute:
            resolved[text] = await self._compute(text, feature)

        logger.debug(
            "Resolved %d texts (%d cached, %d computed)",
            len(texts),
            len(distinct) - len(to_compute),
            len(to_compute),
        )

        return [resolved[text] for text in texts]

    async def _compute(self, text: str, feature: FeatureType) -> TextEmbedding:
        """Embed a missing text and store it.

        The store call is an insert-or-fetch on the unique text column.
        When a concurrent request stored the same text first, its row and
        vector are returned so the caller never references a vector other
        than the one in the row it points at.
        """
        vector = await self._embedder.embed(text)
        stored, inserted = await self._storage.save_cached_embedding(text, vector, feature)
        if not inserted:
            logger.debug("Embedding for text already stored by a concurrent request")
        return TextEmbedding.from_cached(stored, is_fresh=inserted)

    async def _ensure_tagged(self, cached: CachedEmbedding, feature: FeatureType) -> None:
        if cached.has_feature(feature):
            return
        await self._storage.tag_cached_embedding(cached.id, feature)
        cached.feature_tags.append(feature)

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups served from the cache (0.0 if none yet)."""
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total

    @property
    def cache_stats(self) -> dict[str, int | float]:
        """Get hit/miss statistics for this process."""
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }
