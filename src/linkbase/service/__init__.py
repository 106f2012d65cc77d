"""Linkbase service layer.

Provides the high-level MemoryService for connection facts.

Example:
    ```python
    from linkbase.service import MemoryService

    async with MemoryService.create() as memory:
        await memory.upsert_facts("conn_123", ["loves coffee", "plays chess"])
        result = await memory.search_facts("board games", user_id="user_123")
    ```
"""

from .base import MemoryService
from .facts import ReconciliationPlan, plan_reconciliation
from .query_expansion import ExpandedQuery, expand_query, expand_search_text

__all__ = [
    "ExpandedQuery",
    "MemoryService",
    "ReconciliationPlan",
    "expand_query",
    "expand_search_text",
    "plan_reconciliation",
]
