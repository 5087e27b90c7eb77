"""
api/main.py -- FastAPI application entry point for the SSO service.

Exposes AuthService (login, register, is_admin) over HTTP. The service itself
knows nothing about HTTP; this module wires it to a SqlStore from Settings and
translates AuthError kinds into status codes.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- method, path, status, latency for every request
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan handles startup (store + schema + service) and shutdown (dispose
the engine) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, ErrorKind
from auth.hasher import PasswordHasher
from auth.service import AuthService
from auth.store import SqlStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sso.api")

# ---------------------------------------------------------------------------
# Service assembly
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, store: SqlStore) -> AuthService:
    """Assemble AuthService from settings. The store serves as both directory and registry."""
    return AuthService(
        directory=store,
        registry=store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        issuer=TokenIssuer(),
        token_ttl=settings.token_ttl,
        timeout=settings.operation_timeout_seconds,
        legacy_is_admin_errors=settings.legacy_is_admin_errors,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store, make sure the schema exists, build the service.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("SSO API starting up")

    app.state.store = SqlStore(settings.database_url)
    await app.state.store.create_schema()
    app.state.auth_service = build_auth_service(settings, app.state.store)
    logger.info("Auth service initialized (token_ttl=%ss)", settings.token_ttl_seconds)

    yield

    await app.state.store.close()
    logger.info("SSO API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SSO API",
    description="Credential checks, application-scoped session tokens, and admin lookups.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Registered after SlowAPIMiddleware, so it wraps it: rate-limited requests
# are logged too.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_AUTH_ERROR_STATUS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.INVALID_CREDENTIALS: (401, "Invalid email or password."),
    ErrorKind.INVALID_APPLICATION: (400, "Unknown application."),
    ErrorKind.USER_ALREADY_EXISTS: (409, "A user with that email already exists."),
    ErrorKind.USER_NOT_FOUND: (404, "User not found."),
}


def _error(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map AuthError.kind to a status code and stable error code.

    INTERNAL (and any kind not in the table) is logged with its full cause
    chain and returned as an opaque 500 -- storage or signing details never
    reach the client.
    """
    mapped = _AUTH_ERROR_STATUS.get(exc.kind)
    if mapped is None:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(500, ErrorKind.INTERNAL.value, "An unexpected error occurred.")
    status_code, message = mapped
    return _error(status_code, exc.kind.value, message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit hit on %s from %s", request.url.path, client)
    response = _error(429, "rate_limited", "Too many login attempts.", detail=str(exc.detail))
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 when the body or a path parameter fails validation. Input values are not echoed."""
    fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
    return _error(422, "validation_error", "Request validation failed.", detail=fields or None)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404) and wrong methods (405) in the same envelope."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, ErrorKind.INTERNAL.value, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the database answers."""
    database = "ok"
    try:
        await request.app.state.store.ping()
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
