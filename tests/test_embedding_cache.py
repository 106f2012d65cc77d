"""Tests for the persistent embedding cache."""

import pytest

from linkbase.embeddings import EmbeddingCache
from linkbase.exceptions import EmbeddingProviderError
from linkbase.models import FeatureType

from conftest import VECTORS


@pytest.fixture
def cache(storage, embedder):
    return EmbeddingCache(storage, embedder)


class TestGetEmbedding:
    """Tests for single-text resolution."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, cache, storage, embedder):
        """The provider should be called once per distinct text."""
        first = await cache.get_embedding("likes coffee")
        second = await cache.get_embedding("likes coffee")

        assert first.is_fresh is True
        assert second.is_fresh is False
        assert embedder.calls == ["likes coffee"]
        assert first.cached_embedding_id == second.cached_embedding_id
        assert second.embedding == VECTORS["likes coffee"]
        assert len(storage.embeddings) == 1

    @pytest.mark.asyncio
    async def test_exact_text_key(self, cache, embedder):
        """Texts differing only in case or whitespace are distinct keys."""
        await cache.get_embedding("likes coffee")
        await cache.get_embedding("Likes coffee")
        await cache.get_embedding("likes coffee ")
        assert len(embedder.calls) == 3

    @pytest.mark.asyncio
    async def test_new_row_tagged_with_feature(self, cache, storage):
        resolved = await cache.get_embedding("espresso", FeatureType.QUERY_EXPANSION)
        row = storage.embeddings[resolved.cached_embedding_id]
        assert row.feature_tags == [FeatureType.QUERY_EXPANSION]

    @pytest.mark.asyncio
    async def test_hit_adds_missing_tag(self, cache, storage, embedder):
        """A hit for another domain should tag the row without re-embedding."""
        first = await cache.get_embedding("espresso", FeatureType.QUERY_EXPANSION)
        await cache.get_embedding("espresso", FeatureType.FACT)

        row = storage.embeddings[first.cached_embedding_id]
        assert set(row.feature_tags) == {FeatureType.FACT, FeatureType.QUERY_EXPANSION}
        assert embedder.calls == ["espresso"]

    @pytest.mark.asyncio
    async def test_provider_failure_writes_nothing(self, cache, storage, embedder):
        """A failed provider call should propagate and leave the cache empty."""
        embedder.fail_on.add("likes coffee")
        with pytest.raises(EmbeddingProviderError):
            await cache.get_embedding("likes coffee")
        assert storage.embeddings == {}

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_winning_row(self, cache, storage, embedder):
        """When another writer stored the text first, its row is used and is not fresh."""
        winner, _ = await storage.save_cached_embedding(
            "plays chess", [0.5, 0.5, 0.5, 0.5], FeatureType.FACT
        )

        # Simulate the lookup racing the other writer
        original = storage.get_cached_embedding

        async def stale_lookup(text, conn=None):
            return None

        storage.get_cached_embedding = stale_lookup
        try:
            resolved = await cache.get_embedding("plays chess")
        finally:
            storage.get_cached_embedding = original

        assert resolved.cached_embedding_id == winner.id
        assert resolved.embedding == [0.5, 0.5, 0.5, 0.5]
        assert resolved.is_fresh is False
        assert len(storage.embeddings) == 1


class TestGetManyEmbeddings:
    """Tests for batch resolution."""

    @pytest.mark.asyncio
    async def test_empty_input(self, cache, storage, embedder):
        """Should return an empty list without touching store or provider."""
        assert await cache.get_many_embeddings([]) == []
        assert storage.lookups == 0
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, cache):
        texts = ["plays chess", "likes coffee", "works at Acme"]
        resolved = await cache.get_many_embeddings(texts)
        assert [r.text for r in resolved] == texts
        assert [r.embedding for r in resolved] == [VECTORS[t] for t in texts]

    @pytest.mark.asyncio
    async def test_single_lookup_and_dedup(self, cache, storage, embedder):
        """Cached texts should be fetched in one query; duplicates embedded once."""
        await cache.get_embedding("likes coffee")
        storage.lookups = 0
        embedder.calls.clear()

        resolved = await cache.get_many_embeddings(
            ["likes coffee", "plays chess", "plays chess", "likes coffee"]
        )

        assert storage.lookups == 1
        assert embedder.calls == ["plays chess"]
        assert [r.is_fresh for r in resolved] == [False, True, True, False]
        assert resolved[1].cached_embedding_id == resolved[2].cached_embedding_id

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_rows(self, cache, storage, embedder):
        """Rows computed before a provider failure stay cached."""
        embedder.fail_on.add("works at Acme")
        with pytest.raises(EmbeddingProviderError):
            await cache.get_many_embeddings(["likes coffee", "works at Acme", "plays chess"])

        assert {row.text for row in storage.embeddings.values()} == {"likes coffee"}


class TestCacheStats:
    @pytest.mark.asyncio
    async def test_hit_rate(self, cache):
        """Should track hits and misses for this process."""
        assert cache.hit_rate == 0.0
        await cache.get_embedding("likes coffee")
        await cache.get_embedding("likes coffee")
        await cache.get_many_embeddings(["likes coffee", "plays chess"])

        assert cache.cache_stats == {"hits": 2, "misses": 2, "hit_rate": 0.5}

    def test_exposes_embedder(self, cache, embedder):
        assert cache.embedder is embedder
