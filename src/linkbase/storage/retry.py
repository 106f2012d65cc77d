"""Retry utilities for storage operations.

Provides exponential backoff retry logic for transient connection errors
when talking to PostgreSQL.
"""

from __future__ import annotations

import logging

import asyncpg
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.TooManyConnectionsError,
    asyncpg.CannotConnectNowError,
    asyncpg.ConnectionDoesNotExistError,
    OSError,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    logger.warning(
        "Retrying database operation",
        extra={
            "attempt": retry_state.attempt_number,
            "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


# Only for idempotent statements: reads, the cache upsert and deletes.
pg_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    before_sleep=_log_retry,
    reraise=True,
)
