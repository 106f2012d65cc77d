"""Fact rows.

Every statement is scoped by ``connection_id`` so a fact can only be
changed through the connection that owns it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from linkbase.models import generate_id
from linkbase.storage.retry import pg_retry

from .base import FACT_COLUMNS

if TYPE_CHECKING:
    import asyncpg

    from linkbase.models import Fact


class FactsMixin:
    """Mixin providing fact operations for LinkbaseStorage.

    This mixin expects the following attributes/methods from the base class:
    - _acquire(conn) -> async context manager yielding a connection
    - _row_to_fact(row) -> Fact
    """

    _acquire: Any
    _row_to_fact: Any

    async def insert_fact(
        self,
        connection_id: str,
        text: str,
        embedding_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> Fact:
        """Insert a single fact."""
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"""
                INSERT INTO fact (id, text, connection_id, embedding_id)
                VALUES ($1, $2, $3, $4)
                RETURNING {FACT_COLUMNS}
                """,
                generate_id("fact"),
                text,
                connection_id,
                embedding_id,
            )
        return self._row_to_fact(row)

    async def insert_facts(
        self,
        connection_id: str,
        items: list[tuple[str, str]],
        conn: asyncpg.Connection | None = None,
    ) -> list[Fact]:
        """Insert several facts in one statement.

        Args:
            connection_id: Owning connection.
            items: ``(text, embedding_id)`` pairs.
            conn: Optional connection from ``transaction()``.

        Returns:
            Inserted facts in the order of ``items``.
        """
        if not items:
            return []

        ids = [generate_id("fact") for _ in items]
        async with self._acquire(conn) as c:
            rows = await c.fetch(
                f"""
                INSERT INTO fact (id, text, connection_id, embedding_id)
                SELECT u.id, u.text, $1, u.embedding_id
                FROM unnest($2::text[], $3::text[], $4::text[]) AS u(id, text, embedding_id)
                RETURNING {FACT_COLUMNS}
                """,
                connection_id,
                ids,
                [text for text, _ in items],
                [embedding_id for _, embedding_id in items],
            )

        # RETURNING order is not guaranteed
        by_id = {row["id"]: self._row_to_fact(row) for row in rows}
        return [by_id[fact_id] for fact_id in ids]

    async def update_fact(
        self,
        fact_id: str,
        connection_id: str,
        text: str,
        embedding_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> Fact | None:
        """Replace a fact's text and embedding reference.

        Returns:
            The updated fact, or None if no fact of the connection has that ID.
        """
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"""
                UPDATE fact
                SET text = $3, embedding_id = $4, updated_at = now()
                WHERE id = $1 AND connection_id = $2
                RETURNING {FACT_COLUMNS}
                """,
                fact_id,
                connection_id,
                text,
                embedding_id,
            )
        return self._row_to_fact(row) if row else None

    @pg_retry
    async def delete_fact(
        self,
        fact_id: str,
        connection_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> bool:
        """Delete one fact. Returns False if nothing matched."""
        async with self._acquire(conn) as c:
            deleted = await c.fetchval(
                "DELETE FROM fact WHERE id = $1 AND connection_id = $2 RETURNING id",
                fact_id,
                connection_id,
            )
        return deleted is not None

    @pg_retry
    async def delete_facts(
        self,
        connection_id: str,
        fact_ids: list[str],
        conn: asyncpg.Connection | None = None,
    ) -> int:
        """Delete several facts of a connection. Returns the number deleted."""
        if not fact_ids:
            return 0
        async with self._acquire(conn) as c:
            rows = await c.fetch(
                "DELETE FROM fact WHERE connection_id = $1 AND id = ANY($2::text[]) RETURNING id",
                connection_id,
                list(fact_ids),
            )
        return len(rows)

    @pg_retry
    async def delete_all_facts(
        self,
        connection_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> int:
        """Delete every fact of a connection. Cached embeddings are kept."""
        async with self._acquire(conn) as c:
            rows = await c.fetch(
                "DELETE FROM fact WHERE connection_id = $1 RETURNING id",
                connection_id,
            )
        return len(rows)

    @pg_retry
    async def get_fact(
        self,
        fact_id: str,
        connection_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> Fact | None:
        """Fetch one fact of a connection, or None."""
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"SELECT {FACT_COLUMNS} FROM fact WHERE id = $1 AND connection_id = $2",
                fact_id,
                connection_id,
            )
        return self._row_to_fact(row) if row else None

    @pg_retry
    async def get_facts(
        self,
        connection_id: str,
        texts: list[str] | None = None,
        conn: asyncpg.Connection | None = None,
    ) -> list[Fact]:
        """List a connection's facts, oldest first.

        Args:
            connection_id: Owning connection.
            texts: If given, only facts whose text is in this list.
            conn: Optional connection from ``transaction()``.
        """
        async with self._acquire(conn) as c:
            if texts is None:
                rows = await c.fetch(
                    f"""
                    SELECT {FACT_COLUMNS} FROM fact
                    WHERE connection_id = $1
                    ORDER BY created_at, id
                    """,
                    connection_id,
                )
            else:
                rows = await c.fetch(
                    f"""
                    SELECT {FACT_COLUMNS} FROM fact
                    WHERE connection_id = $1 AND text = ANY($2::text[])
                    ORDER BY created_at, id
                    """,
                    connection_id,
                    list(texts),
                )
        return [self._row_to_fact(row) for row in rows]
