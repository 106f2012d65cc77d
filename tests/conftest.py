"""Pytest configuration and shared fixtures.

Provides a deterministic embedder and an in-memory storage that mirrors
the SQL semantics of LinkbaseStorage (cosine similarity, feature tags,
keyset ordering, limit + 1 fetches, transactions with rollback, cascade
deletes) so service behavior can be tested without PostgreSQL.
"""

from __future__ import annotations

import copy
import hashlib
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest

from linkbase.config import Settings
from linkbase.embeddings import Embedder
from linkbase.exceptions import EmbeddingProviderError
from linkbase.models import (
    CachedEmbedding,
    Connection,
    ConnectionMatch,
    Fact,
    FeatureType,
    ScoredFact,
    generate_id,
)
from linkbase.service import MemoryService

DIMENSIONS = 4

# Hand-placed vectors so similarities in tests are predictable
VECTORS: dict[str, list[float]] = {
    "likes coffee": [1.0, 0.0, 0.0, 0.0],
    "loves coffee": [0.99, 0.14, 0.0, 0.0],
    "espresso": [0.95, 0.31, 0.0, 0.0],
    "works at Acme": [0.0, 1.0, 0.0, 0.0],
    "plays chess": [0.0, 0.0, 1.0, 0.0],
    "board games": [0.0, 0.1, 0.99, 0.0],
    "has two kids": [0.0, 0.0, 0.0, 1.0],
}


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def hashed_vector(text: str) -> list[float]:
    """Deterministic pseudo-random vector for texts without a hand-placed one."""
    digest = hashlib.sha256(text.encode()).digest()
    return [digest[i] / 255.0 + 0.01 for i in range(DIMENSIONS)]


class FakeEmbedder(Embedder):
    """Deterministic embedder that records every call.

    Attributes:
        calls: Texts embedded, in call order.
        fail_on: Texts for which embed() raises EmbeddingProviderError.
        fail_all: Raise for every text.
    """

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(VECTORS if vectors is None else vectors)
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.fail_all = False

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_all or text in self.fail_on:
            raise EmbeddingProviderError(f"provider unavailable for {text!r}")
        return list(self.vectors.get(text) or hashed_vector(text))

    @property
    def dimensions(self) -> int:
        return DIMENSIONS


class InMemoryStorage:
    """In-memory stand-in for LinkbaseStorage.

    Attributes:
        connections, facts, embeddings: Rows keyed by ID.
        fail_on: Method name -> exception raised when that method is called.
        transactions / rollbacks: Counters for transaction use.
    """

    def __init__(self) -> None:
        self.connections: dict[str, Connection] = {}
        self.facts: dict[str, Fact] = {}
        self.embeddings: dict[str, CachedEmbedding] = {}
        self.fail_on: dict[str, BaseException] = {}
        self.transactions = 0
        self.rollbacks = 0
        self.lookups = 0
        self._tick = 0
        self._epoch = datetime(2024, 1, 1, tzinfo=UTC)

    def _now(self) -> datetime:
        # Strictly increasing so created_at ordering is deterministic
        self._tick += 1
        return self._epoch + timedelta(seconds=self._tick)

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise self.fail_on[name]

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryStorage]:
        self.transactions += 1
        snapshot = (copy.deepcopy(self.connections), copy.deepcopy(self.facts))
        try:
            yield self
        except BaseException:
            self.connections, self.facts = snapshot
            self.rollbacks += 1
            raise

    # Cached embeddings

    def _by_text(self, text: str) -> CachedEmbedding | None:
        for row in self.embeddings.values():
            if row.text == text:
                return row
        return None

    async def get_cached_embedding(self, text: str, conn: object = None) -> CachedEmbedding | None:
        self._check("get_cached_embedding")
        self.lookups += 1
        row = self._by_text(text)
        return row.model_copy(deep=True) if row else None

    async def get_many_cached_embeddings(
        self, texts: list[str], conn: object = None
    ) -> list[CachedEmbedding]:
        self._check("get_many_cached_embeddings")
        self.lookups += 1
        wanted = set(texts)
        return [r.model_copy(deep=True) for r in self.embeddings.values() if r.text in wanted]

    async def save_cached_embedding(
        self, text: str, vector: list[float], feature: FeatureType, conn: object = None
    ) -> tuple[CachedEmbedding, bool]:
        self._check("save_cached_embedding")
        existing = self._by_text(text)
        if existing is not None:
            if feature not in existing.feature_tags:
                existing.feature_tags.append(feature)
            return existing.model_copy(deep=True), False
        now = self._now()
        row = CachedEmbedding(
            text=text, embedding=vector, feature_tags=[feature], created_at=now, updated_at=now
        )
        self.embeddings[row.id] = row
        return row.model_copy(deep=True), True

    async def tag_cached_embedding(
        self, embedding_id: str, feature: FeatureType, conn: object = None
    ) -> None:
        self._check("tag_cached_embedding")
        row = self.embeddings[embedding_id]
        if feature not in row.feature_tags:
            row.feature_tags.append(feature)

    # Facts

    async def insert_fact(
        self, connection_id: str, text: str, embedding_id: str, conn: object = None
    ) -> Fact:
        return (await self.insert_facts(connection_id, [(text, embedding_id)], conn=conn))[0]

    async def insert_facts(
        self, connection_id: str, items: list[tuple[str, str]], conn: object = None
    ) -> list[Fact]:
        self._check("insert_facts")
        if not items:
            return []
        inserted = []
        for text, embedding_id in items:
            assert embedding_id in self.embeddings, "fact must reference a cached embedding"
            now = self._now()
            fact = Fact(
                id=generate_id("fact"),
                text=text,
                connection_id=connection_id,
                embedding_id=embedding_id,
                created_at=now,
                updated_at=now,
            )
            self.facts[fact.id] = fact
            inserted.append(fact.model_copy())
        return inserted

    async def update_fact(
        self,
        fact_id: str,
        connection_id: str,
        text: str,
        embedding_id: str,
        conn: object = None,
    ) -> Fact | None:
        self._check("update_fact")
        fact = self.facts.get(fact_id)
        if fact is None or fact.connection_id != connection_id:
            return None
        updated = fact.model_copy(
            update={"text": text, "embedding_id": embedding_id, "updated_at": self._now()}
        )
        self.facts[fact_id] = updated
        return updated.model_copy()

    async def delete_fact(self, fact_id: str, connection_id: str, conn: object = None) -> bool:
        self._check("delete_fact")
        fact = self.facts.get(fact_id)
        if fact is None or fact.connection_id != connection_id:
            return False
        del self.facts[fact_id]
        return True

    async def delete_facts(
        self, connection_id: str, fact_ids: list[str], conn: object = None
    ) -> int:
        self._check("delete_facts")
        count = 0
        for fact_id in fact_ids:
            fact = self.facts.get(fact_id)
            if fact is not None and fact.connection_id == connection_id:
                del self.facts[fact_id]
                count += 1
        return count

    async def delete_all_facts(self, connection_id: str, conn: object = None) -> int:
        self._check("delete_all_facts")
        ids = [f.id for f in self.facts.values() if f.connection_id == connection_id]
        for fact_id in ids:
            del self.facts[fact_id]
        return len(ids)

    async def get_fact(
        self, fact_id: str, connection_id: str, conn: object = None
    ) -> Fact | None:
        self._check("get_fact")
        fact = self.facts.get(fact_id)
        if fact is None or fact.connection_id != connection_id:
            return None
        return fact.model_copy()

    async def get_facts(
        self, connection_id: str, texts: list[str] | None = None, conn: object = None
    ) -> list[Fact]:
        self._check("get_facts")
        facts = [
            f.model_copy()
            for f in self.facts.values()
            if f.connection_id == connection_id and (texts is None or f.text in texts)
        ]
        return sorted(facts, key=lambda f: (f.created_at, f.id))

    # Search

    async def search_fact_rows(
        self,
        query_vector: list[float] | None,
        min_similarity: float = 0.2,
        limit: int = 10,
        cursor=None,
        skip_vector_ids=(),
        user_id: str | None = None,
        connection_id: str | None = None,
        conn: object = None,
    ) -> list[ScoredFact]:
        self._check("search_fact_rows")
        rows: list[tuple[Fact, float | None]] = []
        for fact in self.facts.values():
            if user_id is not None and self.connections[fact.connection_id].user_id != user_id:
                continue
            if connection_id is not None and fact.connection_id != connection_id:
                continue
            if fact.embedding_id in skip_vector_ids:
                continue
            similarity = None
            if query_vector is not None:
                cached = self.embeddings[fact.embedding_id]
                if FeatureType.FACT not in cached.feature_tags:
                    continue
                similarity = cosine(query_vector, cached.embedding)
                if similarity < min_similarity:
                    continue
            rows.append((fact, similarity))

        if query_vector is not None:

            def key(row):
                return (row[1], row[0].created_at, row[0].id)
        else:

            def key(row):
                return (row[0].created_at, row[0].id)

        rows.sort(key=key, reverse=True)

        if cursor is not None:
            created_at = cursor.last_created_at
            if query_vector is not None and cursor.similarity_value is not None:
                if created_at is not None:
                    bound = (cursor.similarity_value, created_at, cursor.last_fact_id)
                    rows = [r for r in rows if key(r) < bound]
                else:
                    rows = [r for r in rows if r[1] < cursor.similarity_value]
            elif query_vector is None and created_at is not None:
                rows = [r for r in rows if key(r) < (created_at, cursor.last_fact_id)]
            else:
                rows = [r for r in rows if r[0].id < cursor.last_fact_id]

        return [
            ScoredFact(
                id=fact.id,
                text=fact.text,
                connection_id=fact.connection_id,
                embedding_id=fact.embedding_id,
                similarity=similarity,
                created_at=fact.created_at,
            )
            for fact, similarity in rows[: limit + 1]
        ]

    async def search_connections_by_fact(
        self,
        query_vector: list[float],
        min_similarity: float = 0.2,
        limit: int = 10,
        offset: int = 0,
        user_id: str | None = None,
        conn: object = None,
    ) -> list[ConnectionMatch]:
        self._check("search_connections_by_fact")
        scored: dict[str, list[ScoredFact]] = {}
        for fact in self.facts.values():
            connection = self.connections[fact.connection_id]
            if user_id is not None and connection.user_id != user_id:
                continue
            cached = self.embeddings[fact.embedding_id]
            similarity = cosine(query_vector, cached.embedding)
            scored.setdefault(fact.connection_id, []).append(
                ScoredFact(
                    id=fact.id,
                    text=fact.text,
                    connection_id=fact.connection_id,
                    embedding_id=fact.embedding_id,
                    similarity=similarity,
                )
            )

        ranked = []
        for connection_id, facts in scored.items():
            eligible = [
                f.similarity
                for f in facts
                if f.similarity >= min_similarity
                and FeatureType.FACT in self.embeddings[f.embedding_id].feature_tags
            ]
            if eligible:
                ranked.append((max(eligible), connection_id))
        ranked.sort(key=lambda r: (-r[0], r[1]))

        return [
            ConnectionMatch(
                connection=self.connections[cid].model_copy(update={"facts": []}),
                facts=sorted(scored[cid], key=lambda f: f.similarity, reverse=True),
                top_similarity=top,
            )
            for top, cid in ranked[offset : offset + limit]
        ]

    # Connections

    async def create_connection(self, connection: Connection, conn: object = None) -> Connection:
        self._check("create_connection")
        stored = connection.model_copy(update={"facts": []})
        self.connections[stored.id] = stored
        return stored.model_copy()

    async def get_connection(
        self,
        connection_id: str,
        user_id: str | None = None,
        include_facts: bool = True,
        conn: object = None,
    ) -> Connection | None:
        self._check("get_connection")
        connection = self.connections.get(connection_id)
        if connection is None or (user_id is not None and connection.user_id != user_id):
            return None
        facts = await self.get_facts(connection_id) if include_facts else []
        return connection.model_copy(update={"facts": facts})

    async def list_connections(
        self, user_id: str, limit: int = 50, offset: int = 0, conn: object = None
    ) -> list[Connection]:
        self._check("list_connections")
        owned = [c for c in self.connections.values() if c.user_id == user_id]
        owned.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return [c.model_copy() for c in owned[offset : offset + limit]]

    async def update_connection(
        self, connection_id: str, user_id: str, fields: dict, conn: object = None
    ) -> Connection | None:
        self._check("update_connection")
        connection = self.connections.get(connection_id)
        if connection is None or connection.user_id != user_id:
            return None
        updated = connection.model_copy(update={**fields, "updated_at": self._now()})
        self.connections[connection_id] = updated
        return updated.model_copy()

    async def delete_connection(
        self, connection_id: str, user_id: str, conn: object = None
    ) -> bool:
        self._check("delete_connection")
        connection = self.connections.get(connection_id)
        if connection is None or connection.user_id != user_id:
            return False
        del self.connections[connection_id]
        # ON DELETE CASCADE
        for fact_id in [f.id for f in self.facts.values() if f.connection_id == connection_id]:
            del self.facts[fact_id]
        return True


@pytest.fixture
def settings() -> Settings:
    """Settings for tests, independent of the environment's search overrides."""
    return Settings(env="test", embedding_dimensions=DIMENSIONS, log_format="text")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def service(storage, embedder, settings) -> MemoryService:
    """MemoryService wired to the in-memory storage and fake embedder."""
    return MemoryService(storage=storage, embedder=embedder, settings=settings)
