"""Connection operations for MemoryService."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from linkbase.exceptions import NotFoundError, ValidationError
from linkbase.models import Connection, FeatureType

from .helpers import clean_texts, error_boundary

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
MET_AT_MAX_LENGTH = 200


def _validate_field(value: str, field: str, max_length: int) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, "must not be blank")
    if len(cleaned) > max_length:
        raise ValidationError(field, f"must be at most {max_length} characters")
    return cleaned


class ConnectionsMixin:
    """Mixin providing connection CRUD for MemoryService.

    This mixin expects the following attributes from the base class:
    - storage: LinkbaseStorage
    - cache: EmbeddingCache
    - upsert_facts(connection_id, texts) -> list[Fact]
    """

    storage: Any
    cache: Any
    upsert_facts: Any

    async def create_connection(
        self,
        user_id: str,
        name: str,
        met_at: str,
        met_when: datetime | None = None,
        facts: Sequence[str] = (),
    ) -> Connection:
        """Create a connection with its initial facts.

        Fact embeddings are resolved first; the connection and its facts
        are then inserted in one transaction.

        Raises:
            ValidationError: If name or met_at is blank or too long.
        """
        name = _validate_field(name, "name", NAME_MAX_LENGTH)
        met_at = _validate_field(met_at, "met_at", MET_AT_MAX_LENGTH)
        texts = clean_texts(facts, dedupe=True)

        with error_boundary("Failed to create connection", user_id=user_id):
            resolved = await self.cache.get_many_embeddings(texts, FeatureType.FACT)
            connection = Connection(user_id=user_id, name=name, met_at=met_at, met_when=met_when)

            async with self.storage.transaction() as conn:
                created: Connection = await self.storage.create_connection(connection, conn=conn)
                created.facts = await self.storage.insert_facts(
                    created.id,
                    [(r.text, r.cached_embedding_id) for r in resolved],
                    conn=conn,
                )

        logger.info("Created connection %s with %d facts", created.id, len(created.facts))
        return created

    async def get_connection(self, connection_id: str, user_id: str) -> Connection:
        """Get one of the user's connections with its facts.

        Raises:
            NotFoundError: If absent or owned by another user.
        """
        with error_boundary("Failed to get connection", connection_id=connection_id):
            connection = await self.storage.get_connection(connection_id, user_id=user_id)
        if connection is None:
            raise NotFoundError("connection", connection_id)
        return connection

    async def list_connections(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[Connection]:
        """List the user's connections, newest first, without facts."""
        with error_boundary("Failed to list connections", user_id=user_id):
            connections: list[Connection] = await self.storage.list_connections(
                user_id, limit=limit, offset=offset
            )
        return connections

    async def update_connection(
        self,
        connection_id: str,
        user_id: str,
        name: str | None = None,
        met_at: str | None = None,
        met_when: datetime | None = None,
        facts: list[str] | None = None,
    ) -> Connection:
        """Update a connection's fields and, if given, reconcile its facts.

        Arguments left as None are not changed. ``facts`` replaces the
        fact set via ``upsert_facts``.

        Raises:
            ValidationError: If name or met_at is blank or too long.
            NotFoundError: If absent or owned by another user.
        """
        fields: dict[str, Any] = {}
        if name is not None:
            fields["name"] = _validate_field(name, "name", NAME_MAX_LENGTH)
        if met_at is not None:
            fields["met_at"] = _validate_field(met_at, "met_at", MET_AT_MAX_LENGTH)
        if met_when is not None:
            fields["met_when"] = met_when

        with error_boundary("Failed to update connection", connection_id=connection_id):
            if fields:
                updated = await self.storage.update_connection(connection_id, user_id, fields)
            else:
                updated = await self.storage.get_connection(
                    connection_id, user_id=user_id, include_facts=False
                )
        if updated is None:
            raise NotFoundError("connection", connection_id)

        if facts is not None:
            await self.upsert_facts(connection_id, facts)

        return await self.get_connection(connection_id, user_id)

    async def delete_connection(self, connection_id: str, user_id: str) -> None:
        """Delete a connection and its facts. Cached embeddings are kept.

        Raises:
            NotFoundError: If absent or owned by another user.
        """
        with error_boundary("Failed to delete connection", connection_id=connection_id):
            deleted = await self.storage.delete_connection(connection_id, user_id)
        if not deleted:
            raise NotFoundError("connection", connection_id)
        logger.info("Deleted connection %s", connection_id)
