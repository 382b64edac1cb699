"""
DocVault Backend - FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires the Database handle, the audit recorder, middleware,
       exception handlers and routers.
Who:   uvicorn (`uvicorn docvault.main:app`); tests call create_app(database=...)
       with an in-memory store.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌──────────┐ ┌──────────────────────┐ │
    │  │ Req ID   │→│ Logging  │→│ Audit (after send)   │ │
    │  └──────────┘ └──────────┘ └──────────────────────┘ │
    │                                                     │
    │  Routes:                                            │
    │  ┌─────────────────┐ ┌──────────────┐ ┌──────────┐  │
    │  │ /api/collections│ │ /actions/find│ │ /auth    │  │
    │  └─────────────────┘ └──────────────┘ └──────────┘  │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌───────────────────────────────────────────────┐  │
    │  │ Valid.→400 │ Auth→401 │ NotFound→404 │ DB→500 │  │
    │  └───────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)

    Shutdown:
    1. Wait for in-flight audit writes
    2. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docvault import __version__
from docvault.config import settings
from docvault.database import Database
from docvault.database import database as default_database
from docvault.exceptions import (
    AuthenticationError,
    DatabaseError,
    DocVaultError,
    NotFoundError,
    ValidationError,
)
from docvault.middleware import (
    AuditMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    request_id_var,
)
from docvault.routes import actions, auth, documents, health
from docvault.services.audit_service import AuditRecorder

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once, at startup.

    Format: 2024-01-15T12:00:00 [INFO] docvault.access: POST /api/... 201 ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("DocVault Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and local development keep working
        logger.error("Configuration error: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("DocVault Backend shutting down...")
    recorder: AuditRecorder = app.state.audit_recorder
    if recorder.pending:
        logger.info("Waiting for %d audit write(s)", recorder.pending)
    await recorder.drain()
    await app.state.database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        ValidationError      → 400 Bad Request
        AuthenticationError  → 401 Unauthorized (WWW-Authenticate: Bearer)
        NotFoundError        → 404 Not Found
        DatabaseError        → 500 (generic message, context logged)
        DocVaultError (base) → 500
        Exception (fallback) → 500 (stack trace logged)

    Responses never include stack traces or driver messages.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        rid = request_id_var.get("")
        logger.info("[%s] Rejected %s %s: %s", rid, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=401,
            content={
                "error": "unauthorized",
                "message": exc.message,
                "request_id": rid,
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        rid = request_id_var.get("")
        return JSONResponse(
            status_code=404,
            content={
                "error": "not_found",
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(DocVaultError)
    async def handle_docvault_error(request: Request, exc: DocVaultError):
        rid = request_id_var.get("")
        logger.error("[%s] Application error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Assemble the application around a Database handle.

    Args:
        database: Store handle to use; defaults to the process-wide one built
                  from settings. Tests pass an in-memory SQLite handle.
    """
    db = database or default_database
    recorder = AuditRecorder(db)

    app = FastAPI(
        title="DocVault API",
        description=(
            "Authenticated document-database access with soft-delete semantics "
            "and per-request audit logging."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.database = db
    app.state.audit_recorder = recorder

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → Audit → routes
    app.add_middleware(AuditMiddleware, recorder=recorder)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(documents.router)
    app.include_router(actions.router)
    app.include_router(auth.router)
    app.include_router(health.router)

    return app


app = create_app()
