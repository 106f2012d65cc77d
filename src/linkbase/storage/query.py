"""Immutable SQL query builder for similarity searches.

Every method returns a new builder, so a partially built query can be
shared and extended without the branches affecting each other. Values are
never interpolated into SQL: they are bound and referenced by positional
placeholders ``$1..$n`` in the order they were added.

Example:
    ```python
    qb = QueryBuilder().add_select("f.id").add_from("fact", "f")
    qb, vec = qb.bind("[0.1,0.2]")
    sim = cosine_similarity_sql("ce.embedding", vec)
    qb = qb.add_select(sim, "similarity").add_where(f"{sim} >= {{}}", 0.2)
    sql, params = qb.set_limit(10).build()
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

JOIN_KINDS = frozenset({"INNER", "LEFT", "RIGHT", "FULL"})
DIRECTIONS = frozenset({"ASC", "DESC"})


@dataclass(frozen=True)
class QueryBuilder:
    """Composable SELECT statement.

    Attributes:
        selects: Select expressions, with alias when given.
        from_clause: The single FROM source.
        joins: Join clauses in call order.
        wheres: Conditions AND-ed together in call order.
        order_bys: ORDER BY terms in call order.
        limit: Placeholder bound for LIMIT, if set.
        offset: Placeholder bound for OFFSET, if set.
        params: Bound values; ``params[i]`` is ``$(i + 1)``.
    """

    selects: tuple[str, ...] = ()
    from_clause: str | None = None
    joins: tuple[str, ...] = ()
    wheres: tuple[str, ...] = ()
    order_bys: tuple[str, ...] = ()
    limit: str | None = None
    offset: str | None = None
    params: tuple[Any, ...] = ()

    @classmethod
    def wrap(cls, inner: QueryBuilder, alias: str) -> QueryBuilder:
        """Start a builder that selects from ``inner`` as a subquery.

        The inner query's parameters are carried over, so placeholders
        bound on the new builder continue its numbering.
        """
        sql, params = inner.build()
        return cls(from_clause=f"({sql}) AS {alias}", params=tuple(params))

    def bind(self, value: Any) -> tuple[QueryBuilder, str]:
        """Bind a value and return the placeholder that refers to it."""
        params = (*self.params, value)
        return replace(self, params=params), f"${len(params)}"

    def add_select(self, expr: str, alias: str | None = None) -> QueryBuilder:
        field = f"{expr} AS {alias}" if alias else expr
        return replace(self, selects=(*self.selects, field))

    def add_from(self, table: str, alias: str | None = None) -> QueryBuilder:
        """Set the FROM source.

        Raises:
            ValueError: If a FROM source is already set.
        """
        if self.from_clause is not None:
            raise ValueError(f"FROM already set to {self.from_clause!r}")
        source = f"{table} {alias}" if alias else table
        return replace(self, from_clause=source)

    def add_join(
        self,
        kind: str,
        table: str,
        on: str,
        alias: str | None = None,
    ) -> QueryBuilder:
        """Append a join. ``kind`` is one of INNER, LEFT, RIGHT, FULL."""
        kind = kind.upper()
        if kind not in JOIN_KINDS:
            raise ValueError(f"Unsupported join kind: {kind}")
        target = f"{table} {alias}" if alias else table
        return replace(self, joins=(*self.joins, f"{kind} JOIN {target} ON {on}"))

    def add_where(self, condition: str, *values: Any) -> QueryBuilder:
        """Append a condition, binding ``values`` to its ``{}`` slots in order.

        Raises:
            ValueError: If the number of ``{}`` slots differs from ``len(values)``.
        """
        slots = condition.count("{}")
        if slots != len(values):
            raise ValueError(f"Condition has {slots} placeholders but {len(values)} values given")

        builder = self
        placeholders: list[str] = []
        for value in values:
            builder, placeholder = builder.bind(value)
            placeholders.append(placeholder)

        rendered = condition.format(*placeholders) if placeholders else condition
        return replace(builder, wheres=(*builder.wheres, rendered))

    def add_where_in(
        self,
        column: str,
        values: list[Any] | tuple[Any, ...],
        negate: bool = False,
    ) -> QueryBuilder:
        """Filter ``column`` by membership in ``values`` (bound as one array).

        An empty list matches nothing, or everything when negated.
        """
        if not values:
            if negate:
                return self
            return replace(self, wheres=(*self.wheres, "FALSE"))

        builder, placeholder = self.bind(list(values))
        if negate:
            condition = f"{column} <> ALL({placeholder})"
        else:
            condition = f"{column} = ANY({placeholder})"
        return replace(builder, wheres=(*builder.wheres, condition))

    def add_order_by(self, expr: str, direction: str = "ASC") -> QueryBuilder:
        direction = direction.upper()
        if direction not in DIRECTIONS:
            raise ValueError(f"Unsupported sort direction: {direction}")
        return replace(self, order_bys=(*self.order_bys, f"{expr} {direction}"))

    def set_limit(self, n: int) -> QueryBuilder:
        if n < 0:
            raise ValueError("limit must be non-negative")
        builder, placeholder = self.bind(n)
        return replace(builder, limit=placeholder)

    def set_offset(self, n: int) -> QueryBuilder:
        if n < 0:
            raise ValueError("offset must be non-negative")
        builder, placeholder = self.bind(n)
        return replace(builder, offset=placeholder)

    def build(self) -> tuple[str, list[Any]]:
        """Render the statement.

        Returns:
            Tuple of (sql, params) ready for ``conn.fetch(sql, *params)``.

        Raises:
            ValueError: If no select expression or no FROM source was added.
        """
        if not self.selects:
            raise ValueError("Query has no select fields")
        if self.from_clause is None:
            raise ValueError("Query has no FROM source")

        parts = [f"SELECT {', '.join(self.selects)}", f"FROM {self.from_clause}"]
        parts.extend(self.joins)
        if self.wheres:
            parts.append("WHERE " + " AND ".join(f"({w})" for w in self.wheres))
        if self.order_bys:
            parts.append("ORDER BY " + ", ".join(self.order_bys))
        if self.limit is not None:
            parts.append(f"LIMIT {self.limit}")
        if self.offset is not None:
            parts.append(f"OFFSET {self.offset}")

        return " ".join(parts), list(self.params)
