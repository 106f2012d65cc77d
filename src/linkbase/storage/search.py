"""Search operations for Linkbase storage.

Fact search is keyset paginated: a page is fetched with one extra row to
learn whether another page exists, and the next page starts strictly after
the last row returned, using ``(similarity, created_at, id)`` as the sort
key so that facts with equal similarity are neither skipped nor repeated.
The cursor carries the whole key, so deleting the fact it points at does
not lose the position.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from linkbase.models import (
    ConnectionMatch,
    FeatureType,
    ScoredFact,
    SearchCursor,
    SearchFactsResult,
)
from linkbase.storage.retry import pg_retry

from .query import QueryBuilder
from .similarity import cosine_similarity_sql, to_vector_literal

if TYPE_CHECKING:
    from collections.abc import Sequence

    import asyncpg


def build_fact_search_query(
    vector_literal: str | None,
    min_similarity: float,
    limit: int,
    cursor: SearchCursor | None = None,
    skip_vector_ids: Sequence[str] = (),
    user_id: str | None = None,
    connection_id: str | None = None,
) -> tuple[str, list[Any]]:
    """Build the fact search statement.

    With ``vector_literal`` None the query lists facts newest first and
    ignores ``min_similarity``. Fetches ``limit + 1`` rows.
    """
    qb = (
        QueryBuilder()
        .add_select("f.id")
        .add_select("f.text")
        .add_select("f.connection_id")
        .add_select("f.embedding_id")
        .add_select("f.created_at")
        .add_from("fact", "f")
    )

    sim: str | None = None
    if vector_literal is not None:
        qb, vec = qb.bind(vector_literal)
        sim = cosine_similarity_sql("ce.embedding", vec)
        qb = (
            qb.add_select(sim, "similarity")
            .add_join("INNER", "cached_embedding", "ce.id = f.embedding_id", "ce")
            .add_where("{}::embedding_feature_type = ANY(ce.feature_tags)", FeatureType.FACT.value)
            .add_where(f"{sim} >= {{}}", min_similarity)
        )

    if user_id is not None:
        qb = qb.add_join("INNER", "connection", "c.id = f.connection_id", "c").add_where(
            "c.user_id = {}", user_id
        )
    if connection_id is not None:
        qb = qb.add_where("f.connection_id = {}", connection_id)
    qb = qb.add_where_in("f.embedding_id", list(skip_vector_ids), negate=True)

    if cursor is not None:
        created_at = cursor.last_created_at
        if sim is not None and cursor.similarity_value is not None:
            if created_at is not None:
                qb = qb.add_where(
                    f"({sim}, f.created_at, f.id) < ({{}}::float8, {{}}::timestamptz, {{}})",
                    cursor.similarity_value,
                    created_at,
                    cursor.last_fact_id,
                )
            else:
                qb = qb.add_where(f"{sim} < {{}}::float8", cursor.similarity_value)
        elif sim is None and created_at is not None:
            qb = qb.add_where(
                "(f.created_at, f.id) < ({}::timestamptz, {})", created_at, cursor.last_fact_id
            )
        else:
            qb = qb.add_where("f.id < {}", cursor.last_fact_id)

    if sim is not None:
        qb = qb.add_order_by(sim, "DESC")
    qb = qb.add_order_by("f.created_at", "DESC").add_order_by("f.id", "DESC")

    return qb.set_limit(limit + 1).build()


def build_connection_ranking_query(
    vector_literal: str,
    min_similarity: float,
    limit: int,
    offset: int,
    user_id: str | None = None,
) -> tuple[str, list[Any]]:
    """Build the query ranking connections by their best-matching fact."""
    inner, vec = QueryBuilder().bind(vector_literal)
    sim = cosine_similarity_sql("ce.embedding", vec)
    inner = (
        inner.add_select("f.connection_id")
        .add_select(sim, "similarity")
        .add_select(
            f"ROW_NUMBER() OVER (PARTITION BY f.connection_id ORDER BY {sim} DESC, f.id)",
            "rn",
        )
        .add_from("fact", "f")
        .add_join("INNER", "cached_embedding", "ce.id = f.embedding_id", "ce")
        .add_where("{}::embedding_feature_type = ANY(ce.feature_tags)", FeatureType.FACT.value)
        .add_where(f"{sim} >= {{}}", min_similarity)
    )
    if user_id is not None:
        inner = inner.add_join("INNER", "connection", "c.id = f.connection_id", "c").add_where(
            "c.user_id = {}", user_id
        )

    return (
        QueryBuilder.wrap(inner, "ranked")
        .add_select("ranked.connection_id")
        .add_select("ranked.similarity")
        .add_where("ranked.rn = 1")
        .add_order_by("ranked.similarity", "DESC")
        .add_order_by("ranked.connection_id", "ASC")
        .set_limit(limit)
        .set_offset(offset)
        .build()
    )


def build_connection_facts_query(
    vector_literal: str, connection_ids: list[str]
) -> tuple[str, list[Any]]:
    """Build the query loading connections with every fact and its similarity."""
    qb, vec = QueryBuilder().bind(vector_literal)
    sim = cosine_similarity_sql("ce.embedding", vec)
    return (
        qb.add_select("c.id")
        .add_select("c.user_id")
        .add_select("c.name")
        .add_select("c.met_at")
        .add_select("c.met_when")
        .add_select("c.created_at")
        .add_select("c.updated_at")
        .add_select("f.id", "fact_id")
        .add_select("f.text", "fact_text")
        .add_select("f.embedding_id", "fact_embedding_id")
        .add_select(sim, "similarity")
        .add_from("connection", "c")
        .add_join("LEFT", "fact", "f.connection_id = c.id", "f")
        .add_join("LEFT", "cached_embedding", "ce.id = f.embedding_id", "ce")
        .add_where_in("c.id", connection_ids)
        .build()
    )


def paginate(rows: list[ScoredFact], limit: int) -> SearchFactsResult:
    """Turn up to ``limit + 1`` rows into a page and its next cursor.

    The cursor points at the last row returned, not the extra row, so the
    next page starts right after what the caller has seen.
    """
    if len(rows) <= limit:
        return SearchFactsResult(facts=rows)

    page = rows[:limit]
    last = page[-1]
    return SearchFactsResult(
        facts=page,
        next_cursor=SearchCursor(
            last_fact_id=last.id,
            similarity_value=last.similarity,
            last_created_at=last.created_at,
        ),
    )


class SearchMixin:
    """Mixin providing search operations for LinkbaseStorage.

    This mixin expects the following attributes/methods from the base class:
    - _acquire(conn) -> async context manager yielding a connection
    - _row_to_scored_fact(row, with_similarity) -> ScoredFact
    - _row_to_connection(row) -> Connection
    - _embedding_dim: int
    """

    _acquire: Any
    _row_to_scored_fact: Any
    _row_to_connection: Any
    _embedding_dim: int

    @pg_retry
    async def search_fact_rows(
        self,
        query_vector: list[float] | None,
        min_similarity: float = 0.2,
        limit: int = 10,
        cursor: SearchCursor | None = None,
        skip_vector_ids: Sequence[str] = (),
        user_id: str | None = None,
        connection_id: str | None = None,
        conn: asyncpg.Connection | None = None,
    ) -> list[ScoredFact]:
        """Fetch up to ``limit + 1`` facts for one search page.

        Args:
            query_vector: Search vector, or None to list facts newest first.
            min_similarity: Inclusive lower bound on similarity.
            limit: Page size.
            cursor: Position after which to continue.
            skip_vector_ids: Cached embedding IDs to exclude.
            user_id: Only facts of this user's connections.
            connection_id: Only facts of this connection.
            conn: Optional connection from ``transaction()``.

        Returns:
            Facts in page order; pass to ``paginate`` to split off the extra row.
        """
        literal = (
            to_vector_literal(query_vector, self._embedding_dim)
            if query_vector is not None
            else None
        )
        sql, params = build_fact_search_query(
            literal,
            min_similarity,
            limit,
            cursor=cursor,
            skip_vector_ids=skip_vector_ids,
            user_id=user_id,
            connection_id=connection_id,
        )
        async with self._acquire(conn) as c:
            rows = await c.fetch(sql, *params)
        return [self._row_to_scored_fact(row, with_similarity=literal is not None) for row in rows]

    @pg_retry
    async def search_connections_by_fact(
        self,
        query_vector: list[float],
        min_similarity: float = 0.2,
        limit: int = 10,
        offset: int = 0,
        user_id: str | None = None,
        conn: asyncpg.Connection | None = None,
    ) -> list[ConnectionMatch]:
        """Rank connections by the similarity of their best-matching fact.

        Each match carries all of the connection's facts, most similar
        first, not only those above ``min_similarity``.
        """
        literal = to_vector_literal(query_vector, self._embedding_dim)
        ranking_sql, ranking_params = build_connection_ranking_query(
            literal, min_similarity, limit, offset, user_id=user_id
        )

        async with self._acquire(conn) as c:
            ranked = await c.fetch(ranking_sql, *ranking_params)
            if not ranked:
                return []

            ids = [row["connection_id"] for row in ranked]
            facts_sql, facts_params = build_connection_facts_query(literal, ids)
            rows = await c.fetch(facts_sql, *facts_params)

        connections: dict[str, Any] = {}
        facts: dict[str, list[ScoredFact]] = {cid: [] for cid in ids}
        for row in rows:
            cid = row["id"]
            if cid not in connections:
                connections[cid] = self._row_to_connection(row)
            if row["fact_id"] is not None:
                facts[cid].append(
                    ScoredFact(
                        id=row["fact_id"],
                        text=row["fact_text"],
                        connection_id=cid,
                        embedding_id=row["fact_embedding_id"],
                        similarity=float(row["similarity"]),
                    )
                )

        matches = []
        for row in ranked:
            cid = row["connection_id"]
            # Deleted between the two queries
            if cid not in connections:
                continue
            matches.append(
                ConnectionMatch(
                    connection=connections[cid],
                    facts=sorted(facts[cid], key=lambda f: f.similarity or 0.0, reverse=True),
                    top_similarity=float(row["similarity"]),
                )
            )
        return matches
