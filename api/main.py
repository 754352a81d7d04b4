"""
api/main.py -- FastAPI application entry point for the account service.

Exposes signup/login/logout, the user directory, login history, and device
records over HTTP.

Run with:  uvicorn asgi:app --reload
           python main.py --port 4000

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- default limits; per-route limits run in the route wrapper
  3. log_requests       -- method, path, status, latency, client

Lifespan builds the process-wide components once (UserStore, TokenIssuer,
SessionManager) and stores them on app.state; route handlers and the auth
gate read them from there instead of from module globals.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import RETRY_AFTER_SECONDS, limiter
from api.models import ErrorDetail, ErrorResponse, FieldError, HealthResponse
from api.routes.devices import router as devices_router
from api.routes.sessions import router as sessions_router
from api.routes.users import router as users_router
from auth.errors import AccountError, InternalError, TooManyRequests, ValidationError
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def configure_app_state(app: FastAPI, settings: Settings, store: UserStore) -> None:
    """Build the shared components and attach them to app.state.

    Called by the lifespan on startup, and by the test suite's patched
    lifespan with an isolated store.
    """
    tokens = TokenIssuer(settings.jwt_secret, expire_seconds=settings.token_expire_seconds)
    app.state.settings = settings
    app.state.user_store = store
    app.state.tokens = tokens
    app.state.session_manager = SessionManager(
        store,
        tokens,
        session_secret=settings.session_secret,
        session_max_age=settings.session_max_age_seconds,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and dispose of its engine on shutdown."""
    logger.info("Account API starting up")
    settings = get_settings()
    store = UserStore(settings.database_url) if settings.database_url else UserStore()
    configure_app_state(app, settings, store)
    logger.info("Auth initialized (token signing configured=%s)", app.state.tokens.configured)

    yield

    app.state.user_store.close()
    logger.info("Account API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Account API",
    description="User accounts, JWT login, server-side sessions, login history and devices.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() prepends, so the last one registered is outermost.
# Register innermost-first: SlowAPI, then CORS.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

_cors_origins = get_settings().cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    # Browsers refuse credentialed responses with a wildcard origin.
    allow_credentials="*" not in _cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

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

app.include_router(users_router, tags=["Users"])
app.include_router(sessions_router, tags=["Sessions"])
app.include_router(devices_router, tags=["Devices"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, detail: ErrorDetail, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    """Render any AccountError with its own status and code.

    5xx variants are logged with the underlying cause; the client only sees
    the class's fixed message.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %r",
            exc.code,
            request.method,
            request.url.path,
            exc.__cause__ or exc,
        )
    errors = None
    if isinstance(exc, ValidationError):
        errors = [FieldError(**f) for f in exc.fields]
    headers = None
    retry_after = None
    if isinstance(exc, TooManyRequests):
        retry_after = exc.retry_after_seconds
        headers = {"Retry-After": str(retry_after)}
    return _error_response(
        exc.status_code,
        ErrorDetail(code=exc.code, message=exc.message, errors=errors, retry_after_seconds=retry_after),
        headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    The window is fixed, so Retry-After is always the full window length.
    """
    logger.warning(
        "Rate limit exceeded on %s %s from %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
    )
    throttled = TooManyRequests()
    return _error_response(
        throttled.status_code,
        ErrorDetail(
            code=throttled.code,
            message=throttled.message,
            detail=str(exc.detail),
            retry_after_seconds=RETRY_AFTER_SECONDS,
        ),
        {"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one entry per invalid body field or query parameter."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")) or "request",
            message=err.get("msg", "Invalid value"),
        )
        for err in exc.errors()
    ]
    return _error_response(
        400,
        ErrorDetail(code="validation_error", message="Request validation failed.", errors=errors),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for framework-raised HTTP exceptions (404 route, 405 method)."""
    return _error_response(
        exc.status_code,
        ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)),
        getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    internal = InternalError()
    return _error_response(internal.status_code, ErrorDetail(code=internal.code, message=internal.message))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> JSONResponse:
    """Return liveness, version, and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "unavailable"
    except SQLAlchemyError as exc:
        logger.error("Health check database ping failed: %s", exc)
        database = "unavailable"
    healthy = database == "ok"
    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=API_VERSION,
        components={"database": database},
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
