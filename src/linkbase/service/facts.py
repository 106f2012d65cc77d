"""Fact mutation operations for MemoryService.

Embeddings are always resolved before any fact row is written, so a
provider failure never leaves a fact without its vector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from linkbase.exceptions import NotFoundError, PartialReconciliationError
from linkbase.models import FeatureType

from .helpers import STORE_ERRORS, clean_texts, error_boundary, require_text

if TYPE_CHECKING:
    from linkbase.models import Fact, ScoredFact, SearchFactsResult

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """What an upsert will do to a connection's facts.

    Attributes:
        to_add: Desired texts with no stored fact.
        to_keep: Stored facts whose text is desired, one per text.
        to_delete: Stored facts whose text is not desired, plus duplicates
            of a kept text.
    """

    to_add: list[str] = field(default_factory=list)
    to_keep: list[Fact] = field(default_factory=list)
    to_delete: list[Fact] = field(default_factory=list)


def plan_reconciliation(existing: list[Fact], desired: list[str]) -> ReconciliationPlan:
    """Diff stored facts against a desired, already cleaned list of texts."""
    wanted = set(desired)
    plan = ReconciliationPlan()
    kept_texts: set[str] = set()

    for fact in existing:
        if fact.text in wanted and fact.text not in kept_texts:
            plan.to_keep.append(fact)
            kept_texts.add(fact.text)
        else:
            plan.to_delete.append(fact)

    plan.to_add = [text for text in desired if text not in kept_texts]
    return plan


class FactsMixin:
    """Mixin providing fact add/update/delete/upsert for MemoryService.

    This mixin expects the following attributes from the base class:
    - storage: LinkbaseStorage
    - cache: EmbeddingCache
    - settings: Settings
    - search_facts(...) -> SearchFactsResult
    """

    storage: Any
    cache: Any
    settings: Any
    search_facts: Any

    async def add_fact(self, connection_id: str, text: str) -> Fact:
        """Add one fact to a connection.

        Args:
            connection_id: Owning connection.
            text: Fact text; trimmed before storing.

        Returns:
            The stored fact.

        Raises:
            ValidationError: If the text is blank.
            EmbeddingProviderError: If the embedding could not be computed.
            StorageError: If the fact could not be stored.
        """
        cleaned = require_text(text)
        with error_boundary("Failed to add fact to connection", connection_id=connection_id):
            resolved = await self.cache.get_embedding(cleaned, FeatureType.FACT)
            fact: Fact = await self.storage.insert_fact(
                connection_id, cleaned, resolved.cached_embedding_id
            )

        logger.info("Added fact %s to connection %s", fact.id, connection_id)
        return fact

    async def add_facts(self, connection_id: str, texts: list[str]) -> list[Fact]:
        """Add several facts in one insert.

        Blank texts are dropped. An empty list adds nothing and makes no
        provider call.
        """
        cleaned = clean_texts(texts)
        if not cleaned:
            return []

        with error_boundary("Failed to add facts to connection", connection_id=connection_id):
            resolved = await self.cache.get_many_embeddings(cleaned, FeatureType.FACT)
            facts: list[Fact] = await self.storage.insert_facts(
                connection_id, [(r.text, r.cached_embedding_id) for r in resolved]
            )

        logger.info("Added %d facts to connection %s", len(facts), connection_id)
        return facts

    async def update_fact(self, connection_id: str, fact_id: str, text: str) -> Fact:
        """Replace a fact's text, re-resolving its embedding.

        Ownership is checked before the text is embedded, so an update aimed
        at a missing fact or another connection's fact costs no provider call.

        Raises:
            ValidationError: If the text is blank.
            NotFoundError: If the connection has no fact with this ID.
        """
        cleaned = require_text(text)
        with error_boundary("Failed to update fact", fact_id=fact_id):
            if await self.storage.get_fact(fact_id, connection_id) is None:
                raise NotFoundError("fact", fact_id)
            resolved = await self.cache.get_embedding(cleaned, FeatureType.FACT)
            fact: Fact | None = await self.storage.update_fact(
                fact_id, connection_id, cleaned, resolved.cached_embedding_id
            )

        # Deleted between the check and the update
        if fact is None:
            raise NotFoundError("fact", fact_id)
        return fact

    async def update_facts(
        self, connection_id: str, updates: list[tuple[str, str]]
    ) -> list[Fact]:
        """Apply several ``(fact_id, text)`` updates one after another.

        Not atomic: a failure leaves earlier updates in place.
        """
        results = []
        for fact_id, text in updates:
            results.append(await self.update_fact(connection_id, fact_id, text))
        return results

    async def delete_fact(self, connection_id: str, fact_id: str) -> None:
        """Delete one fact. Its cached embedding is kept.

        Raises:
            NotFoundError: If the connection has no fact with this ID.
        """
        with error_boundary("Failed to delete fact", fact_id=fact_id):
            deleted = await self.storage.delete_fact(fact_id, connection_id)
        if not deleted:
            raise NotFoundError("fact", fact_id)

    async def delete_facts(self, connection_id: str, fact_ids: list[str]) -> int:
        """Delete several facts of a connection. Returns the number deleted."""
        if not fact_ids:
            return 0
        with error_boundary("Failed to delete facts", connection_id=connection_id):
            count: int = await self.storage.delete_facts(connection_id, fact_ids)
        return count

    async def delete_all_facts(self, connection_id: str) -> int:
        """Delete every fact of a connection. Returns the number deleted."""
        with error_boundary("Failed to delete all facts", connection_id=connection_id):
            count: int = await self.storage.delete_all_facts(connection_id)
        logger.info("Deleted %d facts from connection %s", count, connection_id)
        return count

    async def upsert_facts(
        self,
        connection_id: str,
        texts: list[str],
        with_delete: bool = True,
    ) -> list[Fact]:
        """Make a connection's facts match ``texts``.

        Facts whose text is already stored are kept, new texts are added,
        and (with ``with_delete``) stored facts not in ``texts`` are deleted.
        Embeddings are resolved first; the writes then run in one
        transaction, so the connection ends with either the new set or
        the previous one.

        Args:
            connection_id: Connection to reconcile.
            texts: Desired fact texts. Trimmed, blanks dropped, duplicates
                collapsed. An empty list with ``with_delete`` removes all facts.
            with_delete: Delete facts that are no longer desired.

        Returns:
            Added facts followed by kept facts.

        Raises:
            EmbeddingProviderError: If an embedding could not be computed;
                nothing has been written.
            PartialReconciliationError: If a write failed; the transaction
                was rolled back.
        """
        desired = clean_texts(texts, dedupe=True)

        with error_boundary("Failed to upsert facts", connection_id=connection_id):
            existing = await self.storage.get_facts(connection_id)
            plan = plan_reconciliation(existing, desired)
            if not with_delete:
                plan.to_delete = []

            added_embeddings = await self.cache.get_many_embeddings(plan.to_add, FeatureType.FACT)
            kept_embeddings = []
            if self.settings.reembed_kept_facts:
                kept_embeddings = await self.cache.get_many_embeddings(
                    [f.text for f in plan.to_keep], FeatureType.FACT
                )

        phase = "add"
        try:
            async with self.storage.transaction() as conn:
                added: list[Fact] = await self.storage.insert_facts(
                    connection_id,
                    [(r.text, r.cached_embedding_id) for r in added_embeddings],
                    conn=conn,
                )

                phase = "update"
                kept: list[Fact] = list(plan.to_keep)
                if kept_embeddings:
                    kept = []
                    for fact, resolved in zip(plan.to_keep, kept_embeddings, strict=True):
                        if resolved.cached_embedding_id == fact.embedding_id:
                            kept.append(fact)
                            continue
                        updated = await self.storage.update_fact(
                            fact.id,
                            connection_id,
                            fact.text,
                            resolved.cached_embedding_id,
                            conn=conn,
                        )
                        kept.append(updated or fact)

                phase = "delete"
                await self.storage.delete_facts(
                    connection_id, [f.id for f in plan.to_delete], conn=conn
                )
        except STORE_ERRORS as e:
            logger.error(
                "Fact reconciliation failed during %s phase: %s",
                phase,
                e,
                extra={"connection_id": connection_id},
            )
            raise PartialReconciliationError(
                phase, f"Failed to reconcile facts during {phase}; no changes were applied"
            ) from e

        logger.info(
            "Reconciled facts for connection %s: %d added, %d kept, %d deleted",
            connection_id,
            len(added),
            len(kept),
            len(plan.to_delete),
        )
        return added + kept

    async def find_similar_facts(
        self,
        text: str,
        similarity: float | None = None,
        limit: int = 5,
        user_id: str | None = None,
        connection_id: str | None = None,
    ) -> list[ScoredFact]:
        """Facts at least ``similarity`` similar to ``text`` (default 0.9)."""
        if similarity is None:
            similarity = self.settings.search.similar_fact_threshold
        result: SearchFactsResult = await self.search_facts(
            text,
            min_similarity=similarity,
            limit=limit,
            user_id=user_id,
            connection_id=connection_id,
        )
        return result.facts

    async def fact_exists(
        self,
        text: str,
        similarity: float | None = None,
        user_id: str | None = None,
        connection_id: str | None = None,
    ) -> bool:
        """Whether a near-identical fact is stored (default threshold 0.95)."""
        if similarity is None:
            similarity = self.settings.search.fact_exists_threshold
        matches = await self.find_similar_facts(
            text, similarity=similarity, limit=1, user_id=user_id, connection_id=connection_id
        )
        return bool(matches)

    async def add_fact_if_new(
        self,
        connection_id: str,
        text: str,
        similarity: float | None = None,
    ) -> Fact | None:
        """Add a fact unless the connection already has a similar one.

        Not atomic: two concurrent calls may both add.

        Returns:
            The new fact, or None if a similar fact already exists.
        """
        cleaned = require_text(text)
        if await self.find_similar_facts(
            cleaned, similarity=similarity, limit=1, connection_id=connection_id
        ):
            logger.debug("Skipped adding near-duplicate fact to connection %s", connection_id)
            return None
        return await self.add_fact(connection_id, cleaned)

    async def get_related_facts(
        self,
        topics: list[str],
        min_similarity: float | None = None,
        limit: int = 5,
        user_id: str | None = None,
    ) -> dict[str, list[ScoredFact]]:
        """Search once per topic, in order. Blank topics are skipped."""
        related: dict[str, list[ScoredFact]] = {}
        for topic in clean_texts(topics, dedupe=True):
            result: SearchFactsResult = await self.search_facts(
                topic, min_similarity=min_similarity, limit=limit, user_id=user_id
            )
            related[topic] = result.facts
        return related
