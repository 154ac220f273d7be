"""
apiforge — FastAPI Application Factory
=======================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the service container, installs middleware,
       exception handlers and routes. The lifespan handles resources that
       need the event loop (tables, sweeper task, engine disposal).
Who:   uvicorn (`uvicorn apiforge.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                    FastAPI App                       │
    │                                                      │
    │  Middleware:  [Request ID] → [Access Log] → [CORS]   │
    │                                                      │
    │  Routes:                                             │
    │  ┌──────────────┐ ┌──────────────┐ ┌──────────────┐  │
    │  │ /api/...     │ │ /admin/...   │ │ GET /health  │  │
    │  │ (dispatcher) │ │              │ │              │  │
    │  └──────────────┘ └──────────────┘ └──────────────┘  │
    │                                                      │
    │  Exception handlers → ErrorHandler envelope          │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate production configuration (logged, not fatal)
    3. Create tables (sqlalchemy backend)
    4. Start the rate-limit sweeper task
    Shutdown:
    1. Cancel the sweeper
    2. Dispose the database engine
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from apiforge import __version__
from apiforge.config import Settings, settings as default_settings
from apiforge.container import Container, build_container
from apiforge.database import create_tables, dispose_engine
from apiforge.exceptions import ApiError, NotFoundError, ValidationError
from apiforge.middleware.logging import RequestLoggingMiddleware
from apiforge.middleware.request_id import request_id_var, RequestIDMiddleware
from apiforge.providers.base import PersistenceProvider
from apiforge.routes import admin, dispatch, health
from apiforge.services.auth import CustomAuthenticator

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

async def _sweep_rate_limits(container: Container) -> None:
    interval = container.settings.rate_limit_sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        container.rate_limiter.sweep_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    container: Container = app.state.container
    settings = container.settings

    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("%s starting up (%s)...", settings.service_name, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if container.engine is not None:
        await create_tables(container.engine)
        logger.info("Database tables ready")

    sweeper = None
    if settings.rate_limit_enabled:
        sweeper = asyncio.create_task(_sweep_rate_limits(container))

    logger.info("Serving %d endpoints", len(container.registry))
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("%s shutting down...", settings.service_name)
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    if container.engine is not None:
        await dispose_engine(container.engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(request: Request, exc: BaseException) -> JSONResponse:
    container: Container = request.app.state.container
    status, envelope, headers = container.errors.handle(
        exc,
        request.url.path,
        request.method,
        request_id_var.get(""),
        container.errors.describe_request(
            request.method,
            request.url.path,
            query=dict(request.query_params),
            headers=dict(request.headers),
            client_ip=request.client.host if request.client else None,
        ),
    )
    return JSONResponse(status_code=status, content=envelope, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Route every failure outside the dispatcher through the ErrorHandler.

    Handler hierarchy:
        ApiError                → its own status / code
        RequestValidationError  → 422 VALIDATION_ERROR with field errors
        HTTPException           → same status (404 becomes NOT_FOUND)
        Exception (fallback)    → 500 INTERNAL_ERROR, generic message
    """

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        field_errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
                "message": err.get("msg", "Invalid value"),
                "value": None,
            }
            for err in exc.errors()
        ]
        return _error_response(request, ValidationError(field_errors=field_errors))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            error: ApiError = NotFoundError(message=f"Route {request.method} {request.url.path} not found")
        else:
            error = ApiError(message=str(exc.detail), status=exc.status_code)
        return _error_response(request, error)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return _error_response(request, exc)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[Mapping[str, PersistenceProvider]] = None,
    custom_auth: Optional[CustomAuthenticator] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Args:
        settings:     Defaults to the module-level settings
        providers:    Resource → provider overrides
        custom_auth:  Authenticator for AUTH_PROVIDER=custom
        container:    Pre-built container (tests that need an injected clock)
    """
    settings = settings or default_settings
    container = container or build_container(settings, providers=providers, custom_auth=custom_auth)

    app = FastAPI(
        title=settings.docs_title,
        description="Generated REST endpoints with rate limiting, auth, validation and versioning.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    # Last added runs first: RequestID → Logging → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-API-Version",
            "X-API-Deprecation",
            "X-API-Deprecation-Date",
            "X-API-Sunset",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )
    app.add_middleware(RequestLoggingMiddleware, quiet_paths=("/health",))
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(admin.router)
    app.include_router(dispatch.router)

    return app


app = create_app()
