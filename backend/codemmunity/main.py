"""
Codemmunity Backend: FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn codemmunity.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌──────────┐ ┌──────┐ ┌──────┐        │
    │  │  Req ID  │→│ Logging  │→│ GZip │→│ CORS │        │
    │  └──────────┘ └──────────┘ └──────┘ └──────┘        │
    │                                                     │
    │  Routes:                                            │
    │  ┌────────────┐ ┌───────────────┐ ┌─────────────┐   │
    │  │ /api/posts │ │ /api/comments │ │ GET /health │   │
    │  └────────────┘ └───────────────┘ └─────────────┘   │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ Validation→400 │ Auth→403 │ NotFound→404     │   │
    │  │ DB connection→503 │ DB/thread/unexpected→500 │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Resolve the database configuration (ConfigurationError is fatal)
    3. Connect the ConnectionManager (a failed probe is fatal)
    4. Create missing tables when DB_AUTO_CREATE_SCHEMA is set

    Shutdown:
    1. Dispose the ConnectionManager (close all pooled connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from codemmunity import __version__
from codemmunity.config import Settings, get_settings
from codemmunity.database import ConnectionManager
from codemmunity.exceptions import (
    AuthorizationError,
    CodemmunityError,
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    NotFoundError,
    ThreadIntegrityError,
    ValidationError,
)
from codemmunity.middleware.logging import RequestLoggingMiddleware
from codemmunity.middleware.request_id import RequestIDMiddleware, request_id_var
from codemmunity.routes import comments, health, posts
from codemmunity.routes.deps import ClientDisconnected
from codemmunity.schemas.common import field_errors

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5

# nginx's "client closed request"; nobody reads it, but the access log does
CLIENT_CLOSED_REQUEST = 499

_HTTP_ERROR_CODES = {
    401: "unauthenticated",
    404: "not_found",
    405: "method_not_allowed",
}


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # These log every statement / request at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build the ConnectionManager before serving and dispose it afterwards.

    A ConfigurationError or a failed connection probe propagates out of the
    lifespan, so the server refuses to start instead of serving 503s.
    """
    settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("Codemmunity Backend %s starting up...", __version__)

    try:
        config = settings.database_config()
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e.message)
        logger.critical("Fix the configuration and restart the server.")
        raise

    manager = ConnectionManager(config)
    try:
        await manager.connect()
        if settings.db_auto_create_schema:
            await manager.create_schema()
    except CodemmunityError as e:
        logger.critical("Startup aborted: %s", e.message)
        await manager.dispose()
        raise

    app.state.db = manager
    logger.info("Server ready at http://%s:%d", settings.app_host, settings.app_port)
    logger.info("=" * 60)

    try:
        yield  # Application runs here
    finally:
        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Codemmunity Backend shutting down...")
        await manager.dispose()
        app.state.db = None
        logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details=None,
    headers=None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400 Bad Request
        HTTPException (missing X-User-ID)       → 401 Unauthorized
        AuthorizationError                      → 403 Forbidden
        NotFoundError                           → 404 Not Found
        DatabaseConnectionError (+ subclasses)  → 503 Service Unavailable
        ThreadIntegrityError, DatabaseError     → 500 Internal Server Error
        Exception (fallback)                    → 500 Internal Server Error

    Exception handlers never expose stack traces, SQL or driver messages in
    the response. Details are logged server-side.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = field_errors(exc.errors())
        logger.warning(
            "[%s] Request validation failed: %s",
            request_id_var.get(""),
            ", ".join(err.field for err in errors),
        )
        return _error_response(
            400,
            "validation_error",
            "Request validation failed",
            details=[err.model_dump() for err in errors],
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        error = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        return _error_response(
            exc.status_code,
            error,
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        logger.warning("[%s] Forbidden: %s", request_id_var.get(""), exc.message)
        return _error_response(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(DatabaseConnectionError)
    async def handle_database_unavailable(request: Request, exc: DatabaseConnectionError):
        logger.error(
            "[%s] Database unavailable (%s) | Context: %s",
            request_id_var.get(""),
            exc.reason,
            exc.context,
        )
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            details={"reason": exc.reason},
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(ThreadIntegrityError)
    async def handle_thread_integrity_error(request: Request, exc: ThreadIntegrityError):
        logger.error(
            "[%s] Corrupted comment thread for post %s: %s",
            request_id_var.get(""),
            exc.post_id,
            exc.comment_ids,
        )
        return _error_response(
            500,
            "server_error",
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(
            500,
            "server_error",
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(ClientDisconnected)
    async def handle_client_disconnected(request: Request, exc: ClientDisconnected):
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The settings are read here but only resolved into a database
    configuration in the lifespan, so importing the module never fails on a
    missing DB_* variable.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Codemmunity API",
        description=(
            "Code-sharing community backend: publish source-code posts, "
            "like them and discuss them in threaded comments."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = None

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added = first to execute: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(posts.router)
    app.include_router(comments.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `codemmunity.main:app` to be importable
app = create_app()
