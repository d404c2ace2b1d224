"""
api/main.py -- FastAPI application entry point for the finder auth API.

Run with:  uvicorn api.main:app --reload

Middleware stack (Starlette wraps the last-added outermost):
  1. log_requests          -- method, path, status, latency, client
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the auth components once from Settings (store, hasher,
lockout policy, token issuer, session registry, reset flow, service) and
closes the store on shutdown. Configuration errors (missing signing keys)
raise while Settings is constructed, so the process never starts serving
with a broken configuration.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.hashing import CredentialHasher
from auth.lockout import LockoutPolicy
from auth.notify import build_notifier
from auth.reset import ResetTokenFlow
from auth.service import AuthService
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("finder.api")

# Read once at import: middleware configuration needs it before lifespan runs.
settings = get_settings()


# ---------------------------------------------------------------------------
# Component assembly
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, store: UserStore) -> AuthService:
    """Wire the auth components around an open store.

    Every component receives the same immutable Settings instance; none of
    them reads configuration on its own.
    """
    hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
    policy = LockoutPolicy(settings.max_login_attempts, settings.lockout_seconds)
    issuer = TokenIssuer(settings)
    sessions = SessionRegistry(store, issuer, settings)
    resets = ResetTokenFlow(store, hasher, policy, build_notifier(settings), settings)
    return AuthService(store, hasher, policy, issuer, sessions, resets)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the user store and build the auth service; close the store on shutdown."""
    logger.info("Finder auth API starting up")
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url)
    app.state.auth_service = build_auth_service(settings, app.state.user_store)
    logger.info("Auth initialized (bcrypt_rounds=%d)", settings.bcrypt_rounds)

    yield

    app.state.user_store.close()
    logger.info("Finder auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Little Free Finder Auth API",
    description="Registration, login, token rotation, lockout, and password reset.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
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

app.include_router(auth_router, tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same {code, message, statusCode} envelope so
# clients can parse errors without choosing a schema by status code.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(code=code, message=message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a per-IP rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "RATE_LIMIT_001", "Too many requests. Please try again later")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 naming the first invalid field. Raw input values are not echoed."""
    errors = exc.errors()
    message = "Request validation failed."
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", message)
    return _error(400, "VALIDATION_001", message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException in the uniform envelope.

    Route handlers raise HTTPException with detail=AuthError.envelope() (a
    dict already in envelope shape). Anything else (404 for unknown paths,
    405) is wrapped with a generic HTTP_<status> code.
    """
    if isinstance(exc.detail, dict) and {"code", "message"} <= exc.detail.keys():
        response = _error(exc.status_code, exc.detail["code"], exc.detail["message"])
    else:
        response = _error(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures: full detail to the server log, a generic message to the client."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "DATABASE_001", "Database operation failed")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged server-side only, never written to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "SERVER_001", "An unexpected error occurred. Please try again later")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration. No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
