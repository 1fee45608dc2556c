"""
api/main.py -- FastAPI application entry point for the LLM Studio BFF.

Exposes OAuth login, session-cookie auth, self profile, user administration,
LLM gateway administration and data-plane token issuance to the browser.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- credentialed CORS for the frontend origin(s)
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

External collaborators (identity gateway, LLM gateway admin, token issuer)
are not built here: the deployment places them on app.state before startup
as app.state.oauth_gateway, app.state.llm_admin and app.state.token_issuer.
app.state.uid_extractor defaults to JWTUIDExtractor. A missing collaborator
does not block startup; the endpoints that need it answer 500
configuration_error.
"""

from __future__ import annotations

import asyncio
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
from api.routes.auth import router as auth_router
from api.routes.llm import router as llm_router
from api.routes.users import router as users_router
from auth.rbac import RBACPolicy
from auth.service import AuthService
from auth.sessions import MemorySessionStore, SQLSessionStore
from auth.store import UserStore
from auth.tokens import JWTUIDExtractor
from core.config import Settings, get_settings
from core.errors import (
    ConfigurationError,
    ForbiddenError,
    GatewayError,
    InvalidInputError,
    ProviderNotConfiguredError,
    SessionNotFoundError,
    StudioError,
    UnauthenticatedError,
    UserNotFoundError,
)
from llm.admin import LLMAdminService
from llm.tokens import TokenIssuanceService

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("llmstudio.api")

_PURGE_INTERVAL_SECONDS = 60 * 60

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, users, sessions) -> None:
    """Build the use-case services over the given stores and app.state gateways.

    Called by the lifespan, and by tests with their own in-memory stores.
    """
    state = app.state
    state.settings = settings
    state.user_store = users
    state.session_store = sessions
    if getattr(state, "uid_extractor", None) is None:
        state.uid_extractor = JWTUIDExtractor()

    state.auth_service = AuthService(
        gateway=getattr(state, "oauth_gateway", None),
        sessions=sessions,
        uid_extractor=state.uid_extractor,
        users=users,
        super_admin_emails=settings.super_admin_emails,
    )
    state.rbac = RBACPolicy(sessions, users, page_size=settings.list_users_page_size)
    state.llm_admin_service = LLMAdminService(getattr(state, "llm_admin", None), state.rbac)
    state.token_service = TokenIssuanceService(
        getattr(state, "token_issuer", None),
        state.rbac,
        ttl_seconds=settings.llm_token_ttl_seconds,
        allowed_model_ids=settings.llm_allowed_model_ids,
    )


def _make_session_store(settings: Settings):
    if settings.session_backend == "memory":
        return MemorySessionStore()
    return SQLSessionStore(settings.database_url)


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Drop expired sessions every hour.

    Reads already ignore expired records, so this only bounds table growth.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        try:
            purged = app.state.session_store.purge_expired()
        except Exception:
            logger.exception("Session purge failed")
            continue
        if purged:
            logger.info("Purged %d expired sessions", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores, wire the services, and start the purge task.

    Everything before yield runs on startup; everything after yield runs on
    shutdown, in reverse order.
    """
    settings = get_settings()
    logger.info("LLM Studio BFF starting up")
    users = UserStore(settings.database_url)
    sessions = _make_session_store(settings)
    wire_services(app, settings, users, sessions)
    logger.info(
        "Services wired (session_backend=%s oauth_gateway=%s llm_admin=%s token_issuer=%s)",
        settings.session_backend,
        getattr(app.state, "oauth_gateway", None) is not None,
        getattr(app.state, "llm_admin", None) is not None,
        getattr(app.state, "token_issuer", None) is not None,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    sessions.close()
    users.close()
    logger.info("LLM Studio BFF shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="LLM Studio BFF",
    description="Browser-facing auth, RBAC and LLM gateway administration for LLM Studio.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(llm_router, prefix="/api", tags=["LLM"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Checked in order; first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[StudioError], int], ...] = (
    (UnauthenticatedError, 401),
    (SessionNotFoundError, 401),
    (ForbiddenError, 403),
    (InvalidInputError, 400),
    (ProviderNotConfiguredError, 400),
    (UserNotFoundError, 404),
    (GatewayError, 502),
    (ConfigurationError, 500),
)


def status_for(exc: StudioError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
    """Map domain errors to HTTP statuses.

    Server-side failures (5xx) are logged with the exception; their message
    still goes out because it names a missing collaborator or a downstream
    failure, never request data.
    """
    status = status_for(exc)
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    elif status == 403:
        logger.debug("Forbidden on %s %s: %s", request.method, request.url.path, exc)
    return error_response(status, exc.code, exc.message or exc.code, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness."""
    return HealthResponse()
