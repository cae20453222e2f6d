"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from planilla import __version__
from planilla.api.middleware import (
    AuthenticationMiddleware,
    ErrorHandlingMiddleware,
    RequestContextMiddleware,
    RequestLoggingMiddleware,
)
from planilla.api.middleware.errors import request_validation_handler
from planilla.api.routers import api_router, health_router
from planilla.config.settings import Settings, get_settings
from planilla.config.validation import get_configuration_summary, validate_or_raise
from planilla.core.logging import get_logger, setup_logging
from planilla.db.config import close_db, create_engine, create_session_factory, init_db

logger = get_logger("planilla.api")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    This is the application factory that assembles all components:
    - Database engine and session factory (on ``app.state``)
    - Middleware (in correct order)
    - Routers
    - Exception handlers
    - Lifespan management

    Args:
        settings: Optional settings override (useful for testing)

    Returns:
        Configured FastAPI application

    Example:
        # Testing
        app = create_app(settings=Settings(ENVIRONMENT="test", DATABASE_URL=url))

        # Run with uvicorn
        uvicorn planilla.api.app:create_app --factory
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Planilla API",
        description="Multi-tenant payroll platform API",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=_lifespan,
    )

    # Store settings and database handles on app state for dependencies
    app.state.settings = settings
    app.state.engine = create_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)

    _configure_middleware(app, settings)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    _configure_routers(app)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup configures logging and refuses to start on configuration errors.
    It then logs a secret-free configuration summary and verifies the database
    is reachable. Shutdown disposes the engine.
    """
    settings: Settings = app.state.settings
    setup_logging(settings)
    validate_or_raise(settings)
    logger.info(
        "planilla_starting", version=__version__, **get_configuration_summary(settings)
    )
    await init_db(app.state.engine)
    logger.info("database_ready")

    yield

    logger.info("planilla_stopping")
    await close_db(app.state.engine)


def _configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure middleware stack.

    Middleware order (outermost to innermost execution):
    1. RequestContextMiddleware - Assigns the request id and binds it to logs
    2. RequestLoggingMiddleware - Logs all requests
    3. ErrorHandlingMiddleware - Converts exceptions to APIError responses
    4. CORSMiddleware - Handles CORS (if configured)
    5. AuthenticationMiddleware - Resolves the Bearer token to a tenant context

    Note: Middleware is added in reverse order because Starlette
    processes them from last-added to first-added.
    """
    app.add_middleware(AuthenticationMiddleware)

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)


def _configure_routers(app: FastAPI) -> None:
    # Health checks at root level, everything else under /api
    app.include_router(health_router)
    app.include_router(api_router)
