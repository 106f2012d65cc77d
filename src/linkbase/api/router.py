"""FastAPI router for Linkbase API endpoints.

The caller's identity comes from the ``X-User-Id`` header, set by an
authenticating proxy in front of this service.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from linkbase import __version__
from linkbase.logging import bind_context
from linkbase.models import SearchCursor
from linkbase.service import MemoryService

from .schemas import (
    ConnectionCreateRequest,
    ConnectionListResponse,
    ConnectionSearchResponse,
    ConnectionUpdateRequest,
    DeleteResponse,
    FactSearchResponse,
    FactsAddRequest,
    FactsResponse,
    FactsUpsertRequest,
    FactUpdateRequest,
    HealthResponse,
)


router = APIRouter()

# Service instance (set by app lifespan)
_service: MemoryService | None = None


def set_service(service: MemoryService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> MemoryService:
    """Dependency to get the MemoryService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


async def get_user_id(
    request: Request,
    x_user_id: Annotated[str, Header(min_length=1, max_length=200)],
) -> str:
    """Dependency reading the caller's ID.

    Binds the user and any connection_id or fact_id path parameters to the
    request's log context.
    """
    bind_context(user_id=x_user_id, **request.path_params)
    return x_user_id


ServiceDep = Annotated[MemoryService, Depends(get_service)]
UserIdDep = Annotated[str, Depends(get_user_id)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health, including database connectivity."""
    storage_connected = _service is not None and await _service.storage.health_check()
    return HealthResponse(
        status="healthy" if storage_connected else "unhealthy",
        version=__version__,
        storage_connected=storage_connected,
    )


@router.post(
    "/connections",
    status_code=status.HTTP_201_CREATED,
    tags=["connections"],
)
async def create_connection(
    request: ConnectionCreateRequest,
    service: ServiceDep,
    user_id: UserIdDep,
) -> dict[str, object]:
    """Create a connection with its initial facts."""
    connection = await service.create_connection(
        user_id=user_id,
        name=request.name,
        met_at=request.met_at,
        met_when=request.met_when,
        facts=request.facts,
    )
    return connection.model_dump(mode="json")


@router.get("/connections", response_model=ConnectionListResponse, tags=["connections"])
async def list_connections(
    service: ServiceDep,
    user_id: UserIdDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ConnectionListResponse:
    """List the caller's connections, newest first."""
    connections = await service.list_connections(user_id, limit=limit, offset=offset)
    return ConnectionListResponse(connections=connections, count=len(connections))


@router.get(
    "/connections/search",
    response_model=ConnectionSearchResponse,
    tags=["search"],
)
async def search_connections(
    service: ServiceDep,
    user_id: UserIdDep,
    query: Annotated[str, Query(description="Search topic")] = "",
    expanded: Annotated[bool, Query(description="Expand the query with related terms")] = False,
    cursor: Annotated[int, Query(ge=0, description="Offset returned as next_cursor")] = 0,
) -> ConnectionSearchResponse:
    """Rank the caller's connections by their best-matching fact."""
    page_size = service.settings.api_page_size
    result = await service.search_connections_by_fact(
        query,
        limit=page_size + 1,
        offset=cursor,
        user_id=user_id,
        expand=expanded,
    )

    matches = result.connections
    next_cursor = None
    if len(matches) > page_size:
        matches = matches[:page_size]
        next_cursor = str(cursor + page_size)
    return ConnectionSearchResponse(connections=matches, next_cursor=next_cursor)


@router.get("/connections/{connection_id}", tags=["connections"])
async def get_connection(
    connection_id: str,
    service: ServiceDep,
    user_id: UserIdDep,
) -> dict[str, object]:
    """Get a connection with its facts."""
    connection = await service.get_connection(connection_id, user_id)
    return connection.model_dump(mode="json")


@router.patch("/connections/{connection_id}", tags=["connections"])
async def update_connection(
    connection_id: str,
    request: ConnectionUpdateRequest,
    service: ServiceDep,
    user_id: UserIdDep,
) -> dict[str, object]:
    """Update a connection; ``facts`` replaces its fact set."""
    connection = await service.update_connection(
        connection_id,
        user_id,
        name=request.name,
        met_at=request.met_at,
        met_when=request.met_when,
        facts=request.facts,
    )
    return connection.model_dump(mode="json")


@router.delete(
    "/connections/{connection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["connections"],
)
async def delete_connection(
    connection_id: str,
    service: ServiceDep,
    user_id: UserIdDep,
) -> None:
    """Delete a connection and its facts."""
    await service.delete_connection(connection_id, user_id)


@router.post(
    "/connections/{connection_id}/facts",
    response_model=FactsResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["facts"],
)
async def add_facts(
    connection_id: str,
    request: FactsAddRequest,
    service: ServiceDep,
    user_id: UserIdDep,
) -> FactsResponse:
    """Add facts to a connection."""
    await service.get_connection(connection_id, user_id)
    facts = await service.add_facts(connection_id, request.texts)
    return FactsResponse(facts=facts, count=len(facts))


@router.put(
    "/connections/{connection_id}/facts",
    response_model=FactsResponse,
    tags=["facts"],
)
async def upsert_facts(
    connection_id: str,
    request: FactsUpsertRequest,
    service: ServiceDep,
    user_id: UserIdDep,
) -> FactsResponse:
    """Make a connection's facts match the given list."""
    await service.get_connection(connection_id, user_id)
    facts = await service.upsert_facts(
        connection_id, request.texts, with_delete=request.with_delete
    )
    return FactsResponse(facts=facts, count=len(facts))


@router.delete(
    "/connections/{connection_id}/facts",
    response_model=DeleteResponse,
    tags=["facts"],
)
async def delete_all_facts(
    connection_id: str,
    service: ServiceDep,
    user_id: UserIdDep,
) -> DeleteResponse:
    """Delete every fact of a connection."""
    await service.get_connection(connection_id, user_id)
    deleted = await service.delete_all_facts(connection_id)
    return DeleteResponse(deleted=deleted)


@router.patch("/connections/{connection_id}/facts/{fact_id}", tags=["facts"])
async def update_fact(
    connection_id: str,
    fact_id: str,
    request: FactUpdateRequest,
    service: ServiceDep,
    user_id: UserIdDep,
) -> dict[str, object]:
    """Change a fact's text."""
    await service.get_connection(connection_id, user_id)
    fact = await service.update_fact(connection_id, fact_id, request.text)
    return fact.model_dump(mode="json")


@router.delete(
    "/connections/{connection_id}/facts/{fact_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["facts"],
)
async def delete_fact(
    connection_id: str,
    fact_id: str,
    service: ServiceDep,
    user_id: UserIdDep,
) -> None:
    """Delete one fact."""
    await service.get_connection(connection_id, user_id)
    await service.delete_fact(connection_id, fact_id)


@router.get("/facts/search", response_model=FactSearchResponse, tags=["search"])
async def search_facts(
    service: ServiceDep,
    user_id: UserIdDep,
    query: Annotated[str | None, Query(description="Search topic; omit to list")] = None,
    min_similarity: Annotated[float | None, Query(ge=0.0, le=1.0)] = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    cursor: Annotated[str | None, Query(description="next_cursor of the previous page")] = None,
    connection_id: Annotated[str | None, Query()] = None,
) -> FactSearchResponse:
    """Search the caller's facts by similarity, or list them newest first."""
    result = await service.search_facts(
        query,
        min_similarity=min_similarity,
        limit=limit,
        cursor=SearchCursor.decode(cursor) if cursor else None,
        user_id=user_id,
        connection_id=connection_id,
    )
    return FactSearchResponse(
        facts=result.facts,
        next_cursor=result.next_cursor.encode() if result.next_cursor else None,
    )
