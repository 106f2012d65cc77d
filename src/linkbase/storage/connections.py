"""Connection rows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from linkbase.storage.retry import pg_retry

from .base import CONNECTION_COLUMNS, FACT_COLUMNS

if TYPE_CHECKING:
    import asyncpg

    from linkbase.models import Connection

# Columns a caller may change through update_connection
UPDATABLE_COLUMNS = ("name", "met_at", "met_when")


class ConnectionsMixin:
    """Mixin providing connection operations for LinkbaseStorage.

    This mixin expects the following attributes/methods from the base class:
    - _acquire(conn) -> async context manager yielding a connection
    - _row_to_connection(row, facts) -> Connection
    - _row_to_fact(row) -> Fact
    """

    _acquire: Any
    _row_to_connection: Any
    _row_to_fact: Any

    async def create_connection(
        self,
        connection: Connection,
        conn: asyncpg.Connection | None = None,
    ) -> Connection:
        """Insert a connection row. Facts on the model are not inserted."""
        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"""
                INSERT INTO connection (id, user_id, name, met_at, met_when, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING {CONNECTION_COLUMNS}
                """,
                connection.id,
                connection.user_id,
                connection.name,
                connection.met_at,
                connection.met_when,
                connection.created_at,
                connection.updated_at,
            )
        return self._row_to_connection(row)

    @pg_retry
    async def get_connection(
        self,
        connection_id: str,
        user_id: str | None = None,
        include_facts: bool = True,
        conn: asyncpg.Connection | None = None,
    ) -> Connection | None:
        """Get a connection, optionally checking its owner.

        Returns:
            The connection with its facts (oldest first), or None if absent
            or owned by another user.
        """
        async with self._acquire(conn) as c:
            if user_id is None:
                row = await c.fetchrow(
                    f"SELECT {CONNECTION_COLUMNS} FROM connection WHERE id = $1",
                    connection_id,
                )
            else:
                row = await c.fetchrow(
                    f"SELECT {CONNECTION_COLUMNS} FROM connection WHERE id = $1 AND user_id = $2",
                    connection_id,
                    user_id,
                )
            if row is None:
                return None

            facts = []
            if include_facts:
                fact_rows = await c.fetch(
                    f"""
                    SELECT {FACT_COLUMNS} FROM fact
                    WHERE connection_id = $1
                    ORDER BY created_at, id
                    """,
                    connection_id,
                )
                facts = [self._row_to_fact(r) for r in fact_rows]

        return self._row_to_connection(row, facts)

    @pg_retry
    async def list_connections(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        conn: asyncpg.Connection | None = None,
    ) -> list[Connection]:
        """List a user's connections, newest first, without facts."""
        async with self._acquire(conn) as c:
            rows = await c.fetch(
                f"""
                SELECT {CONNECTION_COLUMNS} FROM connection
                WHERE user_id = $1
                ORDER BY created_at DESC, id DESC
                LIMIT $2 OFFSET $3
                """,
                user_id,
                limit,
                offset,
            )
        return [self._row_to_connection(row) for row in rows]

    async def update_connection(
        self,
        connection_id: str,
        user_id: str,
        fields: dict[str, Any],
        conn: asyncpg.Connection | None = None,
    ) -> Connection | None:
        """Update scalar columns of a connection.

        Args:
            connection_id: Connection to update.
            user_id: Owner; rows of other users are not touched.
            fields: Column values keyed by name (name, met_at, met_when).
            conn: Optional connection from ``transaction()``.

        Returns:
            The updated connection without facts, or None if not found.
        """
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        assignments = ["updated_at = now()"]
        params: list[Any] = [connection_id, user_id]
        for column in UPDATABLE_COLUMNS:
            if column in fields:
                params.append(fields[column])
                assignments.append(f"{column} = ${len(params)}")

        async with self._acquire(conn) as c:
            row = await c.fetchrow(
                f"""
                UPDATE connection SET {", ".join(assignments)}
                WHERE id = $1 AND user_id = $2
                RETURNING {CONNECTION_COLUMNS}
                """,
                *params,
            )
        return self._row_to_connection(row) if row else None

    @pg_retry
    async def delete_connection(
        self,
        connection_id: str,
        user_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> bool:
        """Delete a connection; its facts cascade, cached embeddings stay."""
        async with self._acquire(conn) as c:
            deleted = await c.fetchval(
                "DELETE FROM connection WHERE id = $1 AND user_id = $2 RETURNING id",
                connection_id,
                user_id,
            )
        return deleted is not None
