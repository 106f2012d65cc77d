"""Helper functions for the service layer.

Contains utilities used across the service:
- clean_texts / require_text: Fact text normalization
- error_boundary: Fixed-message error translation for mutations
- validate_limit: Page size checks
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import asyncpg

from linkbase.exceptions import (
    EmbeddingProviderError,
    NotFoundError,
    PartialReconciliationError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STORE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    StorageError,
)


def clean_texts(texts: Iterable[str], dedupe: bool = False) -> list[str]:
    """Trim texts and drop blanks, optionally de-duplicating in order."""
    cleaned = [t.strip() for t in texts if t and t.strip()]
    if dedupe:
        return list(dict.fromkeys(cleaned))
    return cleaned


def require_text(text: str, field: str = "text") -> str:
    """Trim a fact text, rejecting blank input.

    Raises:
        ValidationError: If the text is empty after trimming.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError(field, "must not be blank")
    return cleaned


def validate_limit(limit: int, max_limit: int, field: str = "limit") -> int:
    if limit < 1 or limit > max_limit:
        raise ValidationError(field, f"must be between 1 and {max_limit}, got {limit}")
    return limit


@contextmanager
def error_boundary(message: str, **context: object) -> Iterator[None]:
    """Re-raise provider and store failures with a fixed message.

    The original error is logged and chained as ``__cause__``; it never
    appears in the raised error's message. Caller errors
    (ValidationError, NotFoundError) and reconciliation failures pass
    through unchanged.

    Example:
        ```python
        with error_boundary("Failed to update fact", fact_id=fact_id):
            resolved = await cache.get_embedding(text)
        ```
    """
    try:
        yield
    except (ValidationError, NotFoundError, PartialReconciliationError):
        raise
    except EmbeddingProviderError as e:
        logger.error("%s: %s", message, e, extra=context)
        raise EmbeddingProviderError(message) from e
    except STORE_ERRORS as e:
        logger.error("%s: %s", message, e, extra=context)
        raise StorageError(message) from e
