"""Storage backend for Linkbase.

This module provides the storage layer for persisting connections, facts
and cached embeddings to PostgreSQL with the pgvector extension.

Example:
    ```python
    from linkbase.storage import LinkbaseStorage

    async with LinkbaseStorage() as storage:
        async with storage.transaction() as conn:
            await storage.insert_facts("conn_123", [("likes coffee", "emb_abc")], conn=conn)
    ```
"""

from .client import LinkbaseStorage
from .query import QueryBuilder
from .search import paginate
from .similarity import (
    cosine_similarity_sql,
    parse_vector,
    to_vector_literal,
    validate_min_similarity,
)

__all__ = [
    "LinkbaseStorage",
    "QueryBuilder",
    "paginate",
    "cosine_similarity_sql",
    "parse_vector",
    "to_vector_literal",
    "validate_min_similarity",
]
