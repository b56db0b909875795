"""FastAPI application entry point.

This module initializes the FastAPI application with all routes,
middleware, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text

from nodeflow.api.deps import DBSession
from nodeflow.api.routes import (
    credentials_router,
    executions_router,
    nodes_router,
    webhooks_router,
    workflows_router,
)
from nodeflow.config import settings
from nodeflow.core.database import dispose_engine, get_session_maker
from nodeflow.core.encryption import CredentialEncryption, EncryptionKeyError
from nodeflow.core.logging import configure_logging
from nodeflow.nodes.registry import get_node_registry
from nodeflow.worker import JobWorker

configure_logging(settings)

logger = structlog.get_logger()

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "application_starting",
        host=settings.host,
        port=settings.port,
        debug=settings.debug,
        log_level=settings.log_level,
    )

    # Validate critical configuration
    try:
        CredentialEncryption(settings.encryption_key.get_secret_value())
        logger.info("encryption_key_validated")
    except EncryptionKeyError as e:
        raise ValueError("Invalid ENCRYPTION_KEY format") from e

    logger.info(
        "configuration_loaded",
        encryption_key=settings.get_masked_key("encryption_key"),
        node_types=len(get_node_registry()),
        worker_enabled=settings.worker_enabled,
    )

    worker = None
    if settings.worker_enabled:
        worker = JobWorker(get_session_maker())
        worker.start()
    app.state.worker = worker

    yield

    # Shutdown
    logger.info("application_shutting_down")
    if worker is not None:
        await worker.stop()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Nodeflow",
        description="Workflow execution engine with a durable job queue",
        version=API_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routes
    app.include_router(
        workflows_router,
        prefix="/api/v1/workflows",
        tags=["workflows"],
    )
    app.include_router(
        webhooks_router,
        prefix="/api/v1/webhooks",
        tags=["webhooks"],
    )
    app.include_router(
        executions_router,
        prefix="/api/v1/executions",
        tags=["executions"],
    )
    app.include_router(
        credentials_router,
        prefix="/api/v1/credentials",
        tags=["credentials"],
    )
    app.include_router(
        nodes_router,
        prefix="/api/v1/nodes",
        tags=["nodes"],
    )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions.

        Never expose internal error details in production.
        """
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        if settings.debug:
            detail = str(exc)
        else:
            detail = "An internal error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": detail, "error_type": "internal_error"},
        )

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for load balancers and monitoring."""
        return {"status": "healthy", "version": API_VERSION}

    # Ready check endpoint (includes dependency checks)
    @app.get("/ready", tags=["health"], response_model=None)
    async def ready_check(session: DBSession) -> dict[str, str] | JSONResponse:
        """Readiness check including database connectivity."""
        try:
            await session.execute(text("SELECT 1"))
            return {"status": "ready"}
        except Exception as e:
            logger.error("readiness_check_failed", error=str(e))
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "error": "database_unavailable"},
            )

    # Instrument with OpenTelemetry
    FastAPIInstrumentor.instrument_app(app)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nodeflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
