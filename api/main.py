"""
api/main.py -- FastAPI application entry point for SecureAPI.

Run with:      uvicorn asgi:app --reload

Request path (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- method, path, status, latency, client
  4. throttle_auth         -- per-client token bucket on /api/v1/auth/*; 429
                              here means the request never reaches auth or a
                              route handler
  5. authenticate_request  -- resolves the session cookie into
                              request.state.caller (or None) before any route
  6. SlowAPIMiddleware     -- per-route limits from api.limiter
  7. authorize() dependency on each route -> handler

Lifespan builds the token codec first: a missing or weak SECRET_KEY raises
ConfigError there and the server refuses to start.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import TokenBucketLimiter, limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.products import router as products_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_current_caller, try_get_current_caller
from auth.errors import AuthError, TooManyRequests
from auth.models import CallerContext
from auth.store import UserStore
from auth.tokens import TokenCodec
from catalog.store import ProductStore
from core.config import get_settings

VERSION = "1.0.0"
AUTH_PATH_PREFIX = "/api/v1/auth/"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("secureapi.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared components on startup and release them on shutdown.

    Startup order matters:
      1. Token codec first -- ConfigError aborts startup before any store
         opens a database.
      2. Stores.
      3. Rate limiter -- one instance per process, injected via app.state.
    """
    logger.info("SecureAPI starting up")
    app.state.settings = settings
    app.state.token_codec = TokenCodec.from_settings(settings)
    app.state.user_store = UserStore(settings.database_url)
    app.state.product_store = ProductStore(settings.database_url)
    app.state.rate_limiter = TokenBucketLimiter.from_settings(settings)
    logger.info(
        "Auth initialized (token_ttl=%ss, auth rate limit=%d/%ss)",
        app.state.token_codec.ttl_seconds,
        settings.rate_limit_capacity,
        settings.rate_limit_window_seconds,
    )

    yield

    app.state.product_store.close()
    app.state.user_store.close()
    logger.info("SecureAPI shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SecureAPI",
    description="Users, products, cookie sessions and owner-or-admin authorization.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by authenticated routes.
    docs_url=None,
    redoc_url=None,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Middleware stack
#
# Each add_middleware() / @app.middleware call wraps everything registered
# before it, so registration runs innermost-first: the last one registered
# sees the request first.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def authenticate_request(request: Request, call_next):
    """Resolve the caller before any route runs.

    The store lookup is blocking, so it runs in the thread pool. Failures
    leave request.state.caller as None; the route's authorize() dependency
    decides whether that is acceptable.
    """
    await run_in_threadpool(try_get_current_caller, request)
    return await call_next(request)


@app.middleware("http")
async def throttle_auth(request: Request, call_next):
    """Per-client token bucket in front of the authentication endpoints."""
    if request.url.path.startswith(AUTH_PATH_PREFIX):
        gate: TokenBucketLimiter = request.app.state.rate_limiter
        client = get_remote_address(request)
        if not gate.try_consume(client):
            logger.warning("Auth rate limit exceeded for %s on %s", client, request.url.path)
            return PlainTextResponse(
                TooManyRequests.message,
                status_code=TooManyRequests.status_code,
                headers={"Retry-After": str(gate.retry_after(client))},
            )
    return await call_next(request)


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


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(caller: CallerContext = Depends(get_current_caller)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="SecureAPI")


@app.get("/redoc", include_in_schema=False)
async def redoc(caller: CallerContext = Depends(get_current_caller)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="SecureAPI")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every JSON error uses the ErrorResponse body {timestamp, message, details}
# so clients parse errors uniformly. Rate limiting is the exception: it
# answers in plain text.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, details: str | None = None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, details=details, **extra).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render Unauthenticated/Forbidden/InvalidCredentials/DuplicateEmail.

    The body never includes resource data, and for InvalidCredentials never
    says whether the email or the password was wrong.
    """
    response = _error(exc.status_code, exc.message, f"uri={request.url.path}")
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> PlainTextResponse:
    """Return 429 plain text when a slowapi per-route limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60) or 60)
    return PlainTextResponse(
        TooManyRequests.message,
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one message per invalid field."""
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field_errors[".".join(loc) or "body"] = error.get("msg", "Invalid value")
    return _error(400, "Input validation failed", f"uri={request.url.path}", field_errors=field_errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured body for HTTPException raised by routes and for unmatched paths."""
    return _error(exc.status_code, str(exc.detail), f"uri={request.url.path}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", f"uri={request.url.path}")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. Not rate limited and not authenticated.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round-trip check."""
    try:
        db_ok = request.app.state.user_store.ping()
    except Exception:
        logger.exception("Health check database ping failed")
        db_ok = False
    return HealthResponse(version=VERSION, components={"app": "ok", "database": "ok" if db_ok else "error"})
