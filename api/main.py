"""
api/main.py -- FastAPI application entry point for DadMail auth.

Exposes the credential and session core over HTTP. Business-domain routers
(messages, caregiver dashboards) mount alongside these and guard themselves
with auth.dependencies.get_current_identity / require_roles.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Request path through the middleware, outside in:
  access log -> TrustedHost (ALLOWED_HOSTS) -> CORS (CORS_ORIGINS)
  -> SlowAPI (LOGIN_RATE_LIMIT / REGISTER_RATE_LIMIT) -> router

Lifespan builds the auth components once (engine, stores, services) and
starts the expired-session purge task; shutdown stops the task, waits for
any sweep in progress, then disposes the engine.
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
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, PersistenceError, Unauthorized
from auth.factory import AuthComponents, build_components
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
logger = logging.getLogger("dadmail.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def purge_loop(app: FastAPI, interval_seconds: float, stop: asyncio.Event) -> None:
    """Delete expired session rows every `interval_seconds` until `stop` is set.

    The store call is blocking, so it runs in a worker thread. A failed sweep
    is logged and retried on the next tick. Shutdown sets `stop` and awaits
    the task, so a sweep running in its thread finishes before the engine is
    disposed.
    """
    while True:
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            return
        except asyncio.TimeoutError:
            pass
        try:
            await asyncio.to_thread(app.state.auth_service.purge_expired_sessions)
        except PersistenceError:
            logger.warning("Expired session purge failed; will retry", exc_info=True)


def attach_components(app: FastAPI, components: AuthComponents) -> None:
    """Expose the service objects to request handlers via app.state."""
    app.state.auth = components
    app.state.auth_service = components.service
    app.state.authenticator = components.authenticator


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup and release them on shutdown."""
    logger.info("DadMail auth API starting up")
    settings = get_settings()
    components = build_components(settings)
    attach_components(app, components)

    stop = asyncio.Event()
    purge_task = None
    if settings.session_purge_interval_seconds > 0:
        purge_task = asyncio.create_task(purge_loop(app, settings.session_purge_interval_seconds, stop))
    app.state.purge_task = purge_task

    yield

    if purge_task is not None:
        stop.set()
        await purge_task
    components.close()
    logger.info("DadMail auth API shutdown complete")


app = FastAPI(
    title="DadMail Auth API",
    description="Registration, login, refresh-token rotation and session revocation.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
#
# Starlette wraps each add_middleware() call around the previous stack, so
# the last one added sees the request first. Added innermost-first here:
# SlowAPI, then CORS, then TrustedHost on the outside.
# ---------------------------------------------------------------------------

app.state.limiter = limiter  # SlowAPIMiddleware reads it from app.state
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=600,
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request. Never logs headers or bodies (tokens live there)."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms (client %s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Error envelope
#
# Every handler below answers with ErrorResponse so clients parse one shape
# for all failures: {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an auth-core failure using only its code and client-safe message.

    Persistence failures are logged here with their cause chain.
    """
    if isinstance(exc, PersistenceError):
        logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    headers = {"Cache-Control": "no-store"}
    if isinstance(exc, Unauthorized):
        headers["WWW-Authenticate"] = "Bearer"
    return error_response(exc.status_code, exc.code, exc.message, exc.fields or None, headers)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Plain def: SlowAPIMiddleware calls it without awaiting when the route is sync."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "-")
    return error_response(
        429,
        "rate_limited",
        "Too many requests. Try again later.",
        detail=str(exc.detail),
        headers={"Retry-After": "60"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures (wrong JSON types, oversize fields) name the offending fields."""
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
    return error_response(422, "validation_error", "Request validation failed.", [f for f in fields if f])


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The exception goes to the log, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a database round trip. Unauthenticated and not rate-limited."""
    db_ok = request.app.state.auth.users.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
