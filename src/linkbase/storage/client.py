"""PostgreSQL storage client for Linkbase.

This module provides the main LinkbaseStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from linkbase.storage import LinkbaseStorage

    async with LinkbaseStorage() as storage:
        connection = await storage.get_connection("conn_123", user_id="user_1")
        rows = await storage.search_fact_rows(query_vector, limit=10)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import StorageBase
from .connections import ConnectionsMixin
from .embeddings import EmbeddingCacheMixin
from .facts import FactsMixin
from .search import SearchMixin


class LinkbaseStorage(
    EmbeddingCacheMixin, FactsMixin, SearchMixin, ConnectionsMixin, StorageBase
):
    """Async PostgreSQL + pgvector storage for connections and facts.

    This class combines functionality from multiple mixins:
    - EmbeddingCacheMixin: get_cached_embedding, save_cached_embedding, etc.
    - FactsMixin: insert_facts, update_fact, delete_facts, get_facts, etc.
    - SearchMixin: search_fact_rows, search_connections_by_fact
    - ConnectionsMixin: create_connection, get_connection, delete_connection, etc.

    Write methods accept an optional ``conn`` so several of them can run
    inside one ``transaction()``.
    """

    async def __aenter__(self) -> LinkbaseStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
