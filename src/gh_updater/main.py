"""FastAPI application entry point.

Configures the updater API: package status and operations, GitHub App
connections and webhook intake.
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gh_updater import __version__
from gh_updater.api.apps import router as apps_router
from gh_updater.api.deps import UpdaterContainer
from gh_updater.api.health import router as health_router
from gh_updater.api.packages import router as packages_router
from gh_updater.api.response_envelope import error_response, error_status
from gh_updater.api.webhooks.github import router as github_router
from gh_updater.config import get_settings
from gh_updater.core.exceptions import RateLimitError, UpdaterError
from gh_updater.core.logging import setup_logging
from gh_updater.database import create_schema
from gh_updater.observability.tracing import init_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup/shutdown events."""
    setup_logging()
    init_tracing(service_name="gh-updater")
    settings = get_settings()
    logger.info(
        "Updater starting",
        extra={
            "version": __version__,
            "environment": settings.environment,
            "cache_backend": settings.cache_backend,
        },
    )

    container: UpdaterContainer | None = getattr(app.state, "container", None)
    owns_container = container is None
    if container is None:
        container = UpdaterContainer.build(settings)
        app.state.container = container
        if container.db_engine is not None and settings.database_url.startswith("sqlite"):
            await create_schema(container.db_engine)

    consumer = asyncio.create_task(container.webhook_channel.run())

    yield

    logger.info("Updater shutting down")
    consumer.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await consumer
    if owns_container:
        await container.aclose()
    logger.info("Updater shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory for creating the FastAPI app.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title="GitHub Package Updater",
        description="Plugin and theme updates from private GitHub releases via GitHub Apps",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Handle Pydantic validation errors."""
        logger.warning(
            "Request validation failed",
            extra={"errors": exc.errors(), "path": request.url.path},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    @app.exception_handler(UpdaterError)
    async def updater_exception_handler(
        request: Request,
        exc: UpdaterError,
    ) -> JSONResponse:
        """Map updater errors onto the response envelope."""
        status_code, code = error_status(exc)
        logger.warning(
            "Request failed",
            extra={"path": request.url.path, "code": code, "error": str(exc)},
        )
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            headers = {"Retry-After": str(int(exc.retry_after) + 1)}
        return JSONResponse(
            status_code=status_code,
            content=error_response(str(exc), code),
            headers=headers,
        )

    app.include_router(health_router)
    app.include_router(github_router)
    app.include_router(packages_router, prefix=settings.api_prefix)
    app.include_router(apps_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": "GitHub Package Updater",
            "version": __version__,
            "docs": "/docs" if not settings.is_production else None,
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "gh_updater.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
