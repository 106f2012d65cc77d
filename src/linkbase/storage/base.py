"""Base storage class and helpers.

Contains pool lifecycle, schema setup, transactions, and row conversion.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from linkbase.config import settings
from linkbase.models import CachedEmbedding, Connection, Fact, FeatureType, ScoredFact

from .schema import schema_statements
from .similarity import parse_vector

logger = logging.getLogger(__name__)

# Column lists shared by every statement that returns a full row
FACT_COLUMNS = "id, text, connection_id, embedding_id, created_at, updated_at"
CONNECTION_COLUMNS = "id, user_id, name, met_at, met_when, created_at, updated_at"
EMBEDDING_COLUMNS = (
    "id, text, embedding::text AS embedding, feature_tags::text[] AS feature_tags, "
    "created_at, updated_at"
)


class StorageBase:
    """Base class for Linkbase storage with pool lifecycle and helpers.

    Provides:
    - Pool creation and teardown
    - Schema creation
    - Transactions and connection acquisition
    - Row to model conversion
    """

    def __init__(
        self,
        database_url: str | None = None,
        embedding_dim: int | None = None,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        command_timeout: float | None = None,
        ensure_schema: bool | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            database_url: PostgreSQL URL. Defaults to settings.database_url.
            embedding_dim: Vector column size. Defaults to settings.embedding_dimensions.
            pool_min_size: Defaults to settings.db_pool_min_size.
            pool_max_size: Defaults to settings.db_pool_max_size.
            command_timeout: Defaults to settings.db_command_timeout.
            ensure_schema: Create tables on initialize. Defaults to settings.db_ensure_schema.
        """
        self._database_url = database_url or settings.database_url
        self._embedding_dim = embedding_dim or settings.embedding_dimensions
        self._pool_min_size = (
            pool_min_size if pool_min_size is not None else settings.db_pool_min_size
        )
        self._pool_max_size = pool_max_size or settings.db_pool_max_size
        self._command_timeout = command_timeout or settings.db_command_timeout
        self._ensure_schema_on_init = (
            ensure_schema if ensure_schema is not None else settings.db_ensure_schema
        )
        self._pool: asyncpg.Pool | None = None

    @property
    def embedding_dim(self) -> int:
        return self._embedding_dim

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not initialized."""
        if self._pool is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._pool

    async def initialize(self) -> None:
        """Create the connection pool and ensure the schema exists."""
        self._pool = await asyncpg.create_pool(
            self._database_url,
            min_size=self._pool_min_size,
            max_size=self._pool_max_size,
            command_timeout=self._command_timeout,
            statement_cache_size=0,
        )
        if self._ensure_schema_on_init:
            await self._ensure_schema()
        logger.info("Storage initialized (pool max size %d)", self._pool_max_size)

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            for statement in schema_statements(self._embedding_dim):
                await conn.execute(statement)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run several statements atomically.

        Pass the yielded connection as ``conn=`` to storage methods. The
        transaction commits when the block exits and rolls back if it raises.

        Example:
            ```python
            async with storage.transaction() as conn:
                await storage.insert_facts(connection_id, items, conn=conn)
                await storage.delete_facts(connection_id, stale_ids, conn=conn)
            ```
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @asynccontextmanager
    async def _acquire(
        self, conn: asyncpg.Connection | None = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """Use ``conn`` when given, otherwise borrow one from the pool."""
        if conn is not None:
            yield conn
            return
        async with self.pool.acquire() as acquired:
            yield acquired

    async def health_check(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            async with self._acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
            logger.warning("Health check failed: %s", e)
            return False

    @staticmethod
    def _row_to_fact(row: Mapping[str, Any]) -> Fact:
        return Fact(
            id=row["id"],
            text=row["text"],
            connection_id=row["connection_id"],
            embedding_id=row["embedding_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_connection(row: Mapping[str, Any], facts: list[Fact] | None = None) -> Connection:
        return Connection(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            met_at=row["met_at"],
            met_when=row["met_when"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            facts=facts or [],
        )

    @staticmethod
    def _row_to_cached_embedding(row: Mapping[str, Any]) -> CachedEmbedding:
        return CachedEmbedding(
            id=row["id"],
            text=row["text"],
            embedding=parse_vector(row["embedding"]),
            feature_tags=[FeatureType(tag) for tag in row["feature_tags"] or []],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_scored_fact(row: Mapping[str, Any], with_similarity: bool = True) -> ScoredFact:
        return ScoredFact(
            id=row["id"],
            text=row["text"],
            connection_id=row["connection_id"],
            embedding_id=row["embedding_id"],
            similarity=float(row["similarity"]) if with_similarity else None,
            created_at=row["created_at"],
        )
