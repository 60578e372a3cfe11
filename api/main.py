"""
api/main.py -- FastAPI application entry point for the duneauth HTTP bridge.

Exposes the read-only auth backend over HTTP so a host that cannot import
Python (a PHP wiki, a Go service) can still verify AUTHD passwords and read
user metadata.

Run with:      uvicorn asgi:app

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- the bridge is server-to-server; no browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the backend on startup and closes it on shutdown. An
unavailable backend does not stop the server: every route fails closed and
/api/v1/health reports the store as unavailable.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.backend import DuneAuthBackend
from auth.dependencies import MIN_API_KEY_LENGTH, bridge_key_is_usable
from core.config import get_settings

_VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("duneauth.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the read-only backend for the server lifetime and close it after."""
    logger.info("duneauth bridge starting up")
    app.state.backend = DuneAuthBackend()
    if not app.state.backend.available:
        logger.error("Auth backend unavailable -- all checks will fail closed")
    if not _settings.api_key:
        logger.warning("DUNEAUTH_API_KEY is not set -- every protected route will return 401")
    elif not bridge_key_is_usable(_settings.api_key):
        logger.warning(
            "DUNEAUTH_API_KEY is shorter than %d characters -- every protected route will return 401",
            MIN_API_KEY_LENGTH,
        )

    yield

    app.state.backend.close()
    logger.info("duneauth bridge shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="duneauth",
    description="Read-only authentication bridge over the AUTHD account database.",
    version=_VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.trusted_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-API-Key"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# The bridge raises three kinds of error: rate limits from slowapi, 401/404
# HTTPExceptions from auth/dependencies.py and the user routes, and request
# validation failures. Each becomes the same ErrorResponse envelope.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After set to the window of the limit that was hit."""
    logger.warning("Rate limit %s exceeded by %s", exc.detail, request.client.host if request.client else "unknown")
    response = _error(429, "rate_limited", "Too many requests.")
    response.headers["Retry-After"] = str(exc.limit.limit.get_expiry())
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Only field locations are reported; the rejected input may be a password.
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    return _error(422, "validation_error", "Request validation failed.", fields or None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Pass ErrorDetail-shaped details through; wrap a plain string detail."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable. No auth and no rate
# limit -- monitoring must not need the bridge key or be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and credential store status."""
    backend: DuneAuthBackend | None = getattr(request.app.state, "backend", None)
    store_ok = backend is not None and backend.ping()
    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        version=_VERSION,
        components={"app": "ok", "store": "ok" if store_ok else "unavailable"},
    )
