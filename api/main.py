"""
api/main.py -- FastAPI application entry point for TourGate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the object graph once at startup -- Settings, UserStore,
EmailService, TokenCodec, SessionGuard, AccountService -- and parks it on
app.state. Route handlers and dependencies read from app.state; nothing is
constructed per request.
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
from auth.email import EmailService
from auth.errors import AuthError, ExternalServiceError, ValidationError
from auth.guard import SessionGuard
from auth.service import AccountService
from auth.store import UserStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tourgate.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, user_store: UserStore, service: AccountService | None = None) -> None:
    """Attach the auth object graph to app.state.

    Shared by the real lifespan and the test fixtures so both run the same
    wiring. Pass a pre-built AccountService to control its clock or bcrypt cost.
    """
    settings = get_settings()
    service = service or AccountService(user_store, settings)
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.email_service = EmailService(settings)
    app.state.account_service = service
    app.state.session_guard = SessionGuard(service.codec, user_store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("TourGate API starting up")
    settings = get_settings()
    wire_services(app, UserStore(settings.database_url))
    logger.info(
        "Auth initialized (production=%s, smtp=%s)",
        settings.production,
        "configured" if app.state.email_service.is_configured else "dev-log",
    )

    yield

    app.state.user_store.close()
    logger.info("TourGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TourGate API",
    description="Authentication and credential lifecycle for the tour booking platform.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

_edge_settings = get_settings()

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_edge_settings.allowed_hosts,
)

# allow_credentials so browsers send the jwt cookie on cross-origin calls.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_edge_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth.errors exception with its own status and code.

    ValidationError is an expected outcome and is not logged. Collaborator
    failures are logged at error level; the client only sees the safe message.
    """
    if isinstance(exc, ExternalServiceError):
        logger.error("External service failure on %s %s: %s", request.method, request.url.path, exc.message)
    elif not isinstance(exc, ValidationError):
        logger.info("%s on %s %s", type(exc).__name__, request.method, request.url.path)
    resp = _error(exc.status_code, exc.error_code, exc.message)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when request body or params fail validation.

    400 rather than FastAPI's default 422 so schema failures and service-level
    ValidationError share one status. Only the location and reason of each
    failure are echoed; the submitted value (pydantic's "input", which may be
    a plaintext password) and "ctx" never reach the response.
    """
    problems = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    return _error(400, "validation_error", "Request validation failed.", str(problems))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
