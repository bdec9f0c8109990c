"""KeyGate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan     — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()               → app.state.config
  2. create_http_client()        → app.state.http_client (shared, bounded timeouts)
  3. create_document_backend()   → app.state.document_backend
  4. KeyStore + ReadCache        → app.state.key_store / app.state.read_cache
  5. TelegramRelay               → app.state.relay
  6. KeyLifecycleManager         → app.state.key_manager
  7. app.state.ready = True

Shutdown sequence (reverse):
  ready = False → drain expiry notifications → close backend → close HTTP client
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.auth.limiter import limiter
from app.auth.router import router as auth_router
from app.config import Config, load_config
from app.constants import POOL_KEEPALIVE_EXPIRY, POOL_MAX_CONNECTIONS, POOL_MAX_KEEPALIVE
from app.health import router as health_router
from app.keys.lifecycle import KeyLifecycleManager
from app.keys.router import router as keys_router
from app.relay.router import router as send_router
from app.relay.telegram import TelegramRelay
from app.store.cache import ReadCache
from app.store.factory import create_document_backend
from app.store.key_store import KeyStore
from app.utils.logger import configure_logging, get_logger
from app.utils.ulid import generate_ulid

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


def create_http_client(timeout_s: float) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient used by the backend and the relay.

    Created once at lifespan startup; NEVER instantiated per-request. The
    timeout bounds every outbound call so no request can hang on a remote.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
    )


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("KeyGate starting up...")

    # ── Step 1: Load configuration (SystemExit on invalid config) ────────────
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Shared HTTP client ───────────────────────────────────────────
    http_client = create_http_client(config.store.timeout_s)
    app.state.http_client = http_client

    # ── Step 3: Document backend (RuntimeError refuses startup) ──────────────
    backend = create_document_backend(config, http_client)
    app.state.document_backend = backend

    # ── Step 4: Key store + read cache ───────────────────────────────────────
    key_store = KeyStore(backend, config.store.path)
    read_cache = ReadCache(
        backend,
        config.store.path,
        cache_duration_ms=config.cache.cache_duration_ms,
    )
    app.state.key_store = key_store
    app.state.read_cache = read_cache

    # ── Step 5: Messaging relay ──────────────────────────────────────────────
    relay = TelegramRelay(
        http_client,
        api_url=config.relay.api_url,
        timeout_s=config.relay.timeout_s,
    )
    app.state.relay = relay

    # ── Step 6: Lifecycle manager ────────────────────────────────────────────
    key_manager = KeyLifecycleManager(
        key_store,
        read_cache,
        relay,
        extension_days=config.keys.extension_days,
        expired_message=config.relay.expired_message,
        key_prefix=config.keys.access_key_prefix,
    )
    app.state.key_manager = key_manager

    # ── Step 7: Mark as ready ────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "KeyGate ready",
        store_backend=config.store.backend,
        document_path=config.store.path,
        cache_duration_ms=config.cache.cache_duration_ms,
    )

    yield

    # ── Shutdown (reverse order) ─────────────────────────────────────────────
    logger.info("KeyGate shutting down...")
    app.state.ready = False

    await key_manager.drain_notifications()
    await backend.close()

    try:
        await http_client.aclose()
        logger.info("HTTP client closed")
    except Exception as exc:
        logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    logger.info("KeyGate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the KeyGate FastAPI application.

    Call this function directly in tests to get an isolated app instance.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="KeyGate",
        description="Time-bounded access keys for a messaging relay, stored in a versioned document",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # The panel and the send API are called from browsers on other origins.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    application.add_middleware(SlowAPIMiddleware)

    @application.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_ulid()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response

    application.include_router(health_router)
    application.include_router(auth_router, prefix="/api")
    application.include_router(keys_router, prefix="/api")
    application.include_router(send_router, prefix="/api")

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=exc.headers,
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Wrong-typed or unparseable bodies share the missing-field response.
        logger.warning(
            "Request validation failed",
            path=str(request.url.path),
            fields=[".".join(str(part) for part in error["loc"]) for error in exc.errors()],
        )
        return JSONResponse(status_code=400, content={"message": "Missing required fields."})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"message": "An internal server error occurred."}
        )

    return application


app = create_app()
