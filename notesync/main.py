"""
NoteSync — FastAPI Application Factory
======================================

What:  Creates and configures the FastAPI application.
How:   create_app() builds the SyncEngine, registers middleware, exception
       handlers and routes; the lifespan starts and stops the engine.
Who:   uvicorn (`uvicorn notesync.main:app`) or the `notesync` console script.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                    FastAPI App                      │
    │  Middleware: CORS → RequestID → Logging →           │
    │              RateLimit → GZip                       │
    │  Routes:     /api/note/{id}  /api/notes             │
    │              /ws/{id}        /health                │
    │  State:      app.state.engine (SyncEngine)          │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → storage directory → engine.start() (load snapshot,
              start flush and sweep timers)
    Shutdown: engine.stop() (cancel timers, final snapshot)
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from notesync import __version__
from notesync.config import Settings, settings as default_settings
from notesync.exceptions import NoteSyncError, PersistenceError, ValidationError
from notesync.middleware.logging import RequestLoggingMiddleware
from notesync.middleware.rate_limit import RateLimitMiddleware
from notesync.middleware.request_id import RequestIDMiddleware, request_id_var
from notesync.routes import health, notes, stream
from notesync.services.engine import SyncEngine

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure process-wide logging once, at startup.

    Format: 2026-01-15T12:00:00 [INFO] notesync.services.sync_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # uvicorn logs every request and every websocket frame otherwise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    cfg: Settings = app.state.settings
    engine: SyncEngine = app.state.engine

    setup_logging(cfg.log_level)
    logger.info("NoteSync %s starting up...", __version__)

    storage = Path(cfg.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Snapshot file: %s", cfg.snapshot_path.resolve())

    await engine.start()
    logger.info("Server ready at http://%s:%d", cfg.server_host, cfg.server_port)

    yield

    logger.info("NoteSync shutting down...")
    await engine.stop()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map NoteSync exceptions to the JSON error envelope.

        ValidationError (all subclasses) → 400
        PersistenceError                 → 500, generic message
        NoteSyncError (base)             → 500
        Exception (fallback)             → 500, stack trace logged only
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)
        return JSONResponse(
            status_code=400,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        rid = request_id_var.get("")
        logger.error("[%s] Persistence error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "Note storage is temporarily unavailable.",
                "request_id": rid,
            },
        )

    @app.exception_handler(NoteSyncError)
    async def handle_notesync_error(request: Request, exc: NoteSyncError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, exc.error_code, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": exc.error_code,
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
                "message": "An unexpected error occurred. Please try again.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build a NoteSync application.

    Args:
        settings: configuration override (tests pass an isolated storage root);
                  defaults to the environment-derived singleton.

    The engine is attached to `app.state` here rather than in the lifespan so
    that transports which skip lifespan events (httpx ASGITransport) still
    reach a working, if unloaded, engine.
    """
    cfg = settings or default_settings

    app = FastAPI(
        title="NoteSync API",
        description="Real-time shared notes: fetch, update and subscribe to a note by id.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.engine = SyncEngine(cfg)

    # Last added runs first: CORS → RequestID → Logging → RateLimit → GZip.
    # Rejections from the rate limiter still carry CORS headers, a request id
    # and an access log line.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware, settings=cfg)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    register_exception_handlers(app)

    app.include_router(notes.router)
    app.include_router(stream.router)
    app.include_router(health.router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the default application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "notesync.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
        log_level=default_settings.log_level.lower(),
    )
