"""Cosine similarity helpers for pgvector.

pgvector's ``<=>`` operator is cosine *distance*; similarity is
``1 - distance``, in ``[-1, 1]`` and in practice ``[0, 1]`` for text
embeddings.
"""

from __future__ import annotations

import json
import math

from linkbase.exceptions import ValidationError


def cosine_similarity_sql(column: str, placeholder: str) -> str:
    """Render the similarity expression for ``column`` against a bound vector.

    The same rendering is used in SELECT, WHERE, ORDER BY and cursor
    comparisons so the database evaluates one expression per row.
    """
    return f"(1 - ({column} <=> {placeholder}::vector))"


def validate_min_similarity(value: float, field: str = "min_similarity") -> float:
    """Check a similarity threshold is within [0, 1].

    Raises:
        ValidationError: If the value is out of range or not a number.
    """
    if not isinstance(value, int | float) or math.isnan(value):
        raise ValidationError(field, "must be a number")
    if value < 0.0 or value > 1.0:
        raise ValidationError(field, f"must be between 0 and 1, got {value}")
    return float(value)


def to_vector_literal(vector: list[float], dimensions: int | None = None) -> str:
    """Convert a vector to pgvector text input, e.g. ``[0.1,0.2]``.

    Raises:
        ValidationError: On wrong dimensionality or non-finite components.
    """
    if dimensions is not None and len(vector) != dimensions:
        raise ValidationError(
            "embedding", f"expected {dimensions} dimensions, got {len(vector)}"
        )
    if not vector:
        raise ValidationError("embedding", "vector is empty")

    components = []
    for value in vector:
        number = float(value)
        if not math.isfinite(number):
            raise ValidationError("embedding", "vector contains non-finite values")
        components.append(repr(number))
    return "[" + ",".join(components) + "]"


def parse_vector(text: str) -> list[float]:
    """Parse pgvector text output back into a list of floats."""
    return [float(v) for v in json.loads(text)]
