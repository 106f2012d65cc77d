"""Search operations for MemoryService.

Searches soft-fail: a provider or store error is logged and an empty
result is returned, so a search box never surfaces a server error.
Invalid arguments still raise ValidationError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from linkbase.models import FeatureType, SearchConnectionsResult, SearchFactsResult
from linkbase.storage import paginate, validate_min_similarity

from .helpers import validate_limit
from .query_expansion import expand_search_text

if TYPE_CHECKING:
    from linkbase.models import SearchCursor

logger = logging.getLogger(__name__)


class SearchMixin:
    """Mixin providing fact and connection search for MemoryService.

    This mixin expects the following attributes from the base class:
    - storage: LinkbaseStorage
    - cache: EmbeddingCache
    - settings: Settings
    """

    storage: Any
    cache: Any
    settings: Any

    async def search_facts(
        self,
        search_topic: str | None = None,
        min_similarity: float | None = None,
        limit: int | None = None,
        cursor: SearchCursor | None = None,
        skip_vector_ids: Sequence[str] = (),
        user_id: str | None = None,
        connection_id: str | None = None,
    ) -> SearchFactsResult:
        """Search facts by similarity, or list them when there is no topic.

        Args:
            search_topic: Text to search for. None or blank lists facts
                newest first without similarity.
            min_similarity: Inclusive threshold in [0, 1]. Defaults to 0.2.
            limit: Page size. Defaults to 10.
            cursor: ``next_cursor`` of the previous page.
            skip_vector_ids: Cached embedding IDs to exclude.
            user_id: Only facts of this user's connections.
            connection_id: Only facts of this connection.

        Returns:
            One page of facts and the cursor for the next page, if any.

        Raises:
            ValidationError: If ``min_similarity`` or ``limit`` is out of range.
        """
        defaults = self.settings.search
        threshold = validate_min_similarity(
            defaults.min_similarity if min_similarity is None else min_similarity
        )
        page_size = validate_limit(defaults.limit if limit is None else limit, defaults.max_limit)
        topic = (search_topic or "").strip()

        try:
            vector = None
            if topic:
                resolved = await self.cache.get_embedding(topic, FeatureType.QUERY_EXPANSION)
                vector = resolved.embedding

            rows = await self.storage.search_fact_rows(
                vector,
                min_similarity=threshold,
                limit=page_size,
                cursor=cursor,
                skip_vector_ids=skip_vector_ids,
                user_id=user_id,
                connection_id=connection_id,
            )
        except Exception as e:
            logger.error(f"Fact search failed for topic '{topic}': {e}")
            return SearchFactsResult()

        return paginate(rows, page_size)

    async def search_connections_by_fact(
        self,
        search_topic: str,
        min_similarity: float | None = None,
        limit: int = 10,
        offset: int = 0,
        user_id: str | None = None,
        expand: bool = False,
    ) -> SearchConnectionsResult:
        """Rank connections by their best-matching fact.

        Args:
            search_topic: Text to search for. Blank returns no connections.
            min_similarity: Inclusive threshold for the best fact.
            limit: Connections per page.
            offset: Connections to skip.
            user_id: Only this user's connections.
            expand: Expand the topic with related terms before embedding.

        Returns:
            Connections with all their facts, best match first.
        """
        defaults = self.settings.search
        threshold = validate_min_similarity(
            defaults.connection_min_similarity if min_similarity is None else min_similarity
        )
        validate_limit(limit, defaults.max_limit)
        topic = (search_topic or "").strip()
        if not topic:
            return SearchConnectionsResult()

        try:
            if expand:
                topic = await expand_search_text(topic, self.settings.query_expansion_model)
            resolved = await self.cache.get_embedding(topic, FeatureType.QUERY_EXPANSION)
            matches = await self.storage.search_connections_by_fact(
                resolved.embedding,
                min_similarity=threshold,
                limit=limit,
                offset=max(offset, 0),
                user_id=user_id,
            )
        except Exception as e:
            logger.error(f"Connection search failed for topic '{topic}': {e}")
            return SearchConnectionsResult()

        return SearchConnectionsResult(connections=matches)
