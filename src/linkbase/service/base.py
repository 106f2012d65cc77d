"""Core Linkbase service layer.

This module provides the MemoryService that combines storage, the
embedding cache and the embedding provider into fact and connection
operations.

Example:
    ```python
    from linkbase.service import MemoryService

    async with MemoryService.create() as memory:
        connection = await memory.create_connection(
            user_id="user_123",
            name="Dana",
            met_at="PyCon",
            facts=["loves coffee", "works at Acme"],
        )
        result = await memory.search_facts("espresso", user_id="user_123")
        for fact in result.facts:
            print(f"{fact.text} ({fact.similarity:.2f})")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from linkbase.config import Settings
from linkbase.embeddings import Embedder, EmbeddingCache, get_embedder
from linkbase.storage import LinkbaseStorage

from .connections import ConnectionsMixin
from .facts import FactsMixin
from .search import SearchMixin


@dataclass
class MemoryService(FactsMixin, SearchMixin, ConnectionsMixin):
    """High-level service for connection facts.

    This service provides:
    - add_fact / add_facts / update_fact / delete_fact / upsert_facts
    - search_facts: keyset-paginated similarity search
    - search_connections_by_fact: connections ranked by best fact
    - create_connection / get_connection / update_connection / delete_connection

    Uses dependency injection for storage and embeddings, making it easy
    to test and configure.

    Attributes:
        storage: Storage backend (PostgreSQL + pgvector).
        embedder: Embedding provider (OpenAI or FastEmbed).
        settings: Configuration settings.
        cache: Persistent embedding cache over ``storage`` and ``embedder``.
    """

    storage: LinkbaseStorage
    embedder: Embedder
    settings: Settings
    cache: EmbeddingCache = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cache = EmbeddingCache(self.storage, self.embedder)

    @classmethod
    def create(cls, settings: Settings | None = None) -> MemoryService:
        """Create a MemoryService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured MemoryService instance.
        """
        if settings is None:
            settings = Settings()

        # Create embedder first to get dimensions
        embedder = get_embedder(settings)

        return cls(
            storage=LinkbaseStorage(
                database_url=settings.database_url,
                embedding_dim=embedder.dimensions,
                pool_min_size=settings.db_pool_min_size,
                pool_max_size=settings.db_pool_max_size,
                command_timeout=settings.db_command_timeout,
                ensure_schema=settings.db_ensure_schema,
            ),
            embedder=embedder,
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (pool, schema)."""
        await self.storage.initialize()

    async def close(self) -> None:
        await self.storage.close()

    async def __aenter__(self) -> MemoryService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["MemoryService"]
