"""FastAPI application for Linkbase."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from linkbase import __version__
from linkbase.config import Settings
from linkbase.exceptions import LinkbaseError, NotFoundError, ValidationError
from linkbase.logging import configure_logging, get_logger, request_context
from linkbase.service import MemoryService

from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Creates and initializes the MemoryService on startup and closes its
    pool on shutdown.
    """
    settings = Settings()

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info("Starting Linkbase API", log_level=settings.log_level, env=settings.env)

    service = MemoryService.create(settings)
    await service.initialize()
    set_service(service)

    yield

    await service.close()
    set_service(None)


def create_app() -> FastAPI:
    """Create a FastAPI application.

    Example:
        ```python
        from linkbase.api import create_app

        app = create_app()
        # Run with: uvicorn linkbase.api:app --reload
        ```
    """
    app = FastAPI(
        title="Linkbase",
        description="Connection memory: facts about the people you meet, searchable by meaning.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def logging_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Give every request its own logging context and an X-Request-Id."""
        request_id = request.headers.get("x-request-id") or uuid4().hex[:12]
        with request_context(
            request_id=request_id, method=request.method, path=request.url.path
        ):
            response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(LinkbaseError)
    async def linkbase_error_handler(request: Request, exc: LinkbaseError) -> JSONResponse:
        """Handle all other Linkbase errors with 500 status."""
        logger.error("Linkbase error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
