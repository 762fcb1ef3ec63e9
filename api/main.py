"""
api/main.py -- FastAPI application factory for ProfileHub.

Run with:  uvicorn asgi:app --reload
           python main.py serve

create_app(settings) builds a fully wired application. The Settings instance
is the only configuration source; nothing below reads the environment.

Middleware stack (outermost to innermost; Starlette wraps the last-added
middleware around the rest, so create_app() registers them innermost first):
  0. log_requests          -- access log line per request, rejected ones included
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origins
  3. SlowAPIMiddleware     -- enforces the general limit and per-route limits
  4. SessionMiddleware     -- signed cookie carrying the OAuth `state`

Lifespan builds the collaborators (store, hasher, token issuer, image store,
account service, OAuth registry) on startup and disposes the database engine
on shutdown.
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
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from accounts.errors import AccountError
from accounts.service import AccountService
from accounts.store import AccountStore
from api.limiter import configure_limits, limiter
from api.models import ComponentHealth, ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.analytics import router as analytics_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_current_account_id
from auth.oauth import build_oauth
from auth.tokens import PasswordHasher, TokenIssuer
from core.config import Settings
from media.images import ImageStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("profilehub.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


def build_account_service(settings: Settings, store: AccountStore) -> AccountService:
    """Wire an AccountService from settings around an existing store."""
    return AccountService(
        store=store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens=TokenIssuer.from_settings(settings),
        images=ImageStore(settings),
        max_upload_bytes=settings.max_upload_bytes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application-level resources on startup and release them on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The store is created first because the service wraps it.
    """
    settings: Settings = app.state.settings
    logger.info("%s starting up", settings.app_name)
    store = AccountStore(settings.database_url)
    app.state.account_store = store
    app.state.account_service = build_account_service(settings, store)
    app.state.oauth = build_oauth(settings)
    if not settings.cloudinary_enabled:
        logger.warning("Cloudinary is not configured -- picture uploads will fail with upstream_failure")
    logger.info("Account store ready (%s)", store.engine.url.render_as_string(hide_password=True))

    yield

    store.close()
    logger.info("%s shutdown complete", settings.app_name)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    logging.getLogger("profilehub").setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.app_name,
        description="Account registration, login, federated login, profiles and usage analytics.",
        version=settings.version,
        lifespan=lifespan,
        # Built-in /docs and /redoc are replaced by auth-protected routes below.
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    # TokenIssuer is stateless; available before lifespan runs so the auth
    # dependencies work under a patched lifespan too.
    app.state.tokens = TokenIssuer.from_settings(settings)

    # -----------------------------------------------------------------------
    # Middleware stack. Each add_middleware() call wraps the ones before it,
    # so registration runs innermost first: Session, SlowAPI, CORS, TrustedHost.
    # -----------------------------------------------------------------------

    # Authlib stores the OAuth state here between the authorization redirect
    # and the callback; the cookie is signed with SECRET_KEY.
    app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, https_only=settings.secure_cookies)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # SlowAPI looks for app.state.limiter by convention. The ceilings come
    # from this Settings instance, not from the environment.
    configure_limits(settings)
    app.state.limiter = limiter

    # -----------------------------------------------------------------------
    # Request logging middleware
    # -----------------------------------------------------------------------

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

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    app.include_router(analytics_router, prefix="/api/v1", tags=["Analytics"])

    @app.get("/docs", include_in_schema=False)
    async def docs(account_id: str = Depends(get_current_account_id)):
        """Swagger UI -- requires authentication."""
        return get_swagger_ui_html(openapi_url="/openapi.json", title=settings.app_name)

    @app.get("/redoc", include_in_schema=False)
    async def redoc(account_id: str = Depends(get_current_account_id)):
        """ReDoc UI -- requires authentication."""
        return get_redoc_html(openapi_url="/openapi.json", title=settings.app_name)

    _register_exception_handlers(app)

    # -----------------------------------------------------------------------
    # Health -- no rate limit; load balancers must not be throttled.
    # -----------------------------------------------------------------------

    @limiter.exempt
    @app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Return liveness, version, and whether the database answers."""
        try:
            db_ok = request.app.state.account_store.ping()
            database = ComponentHealth(status="healthy" if db_ok else "unhealthy")
        except SQLAlchemyError as exc:
            logger.warning("Health check: database unreachable: %s", exc)
            database = ComponentHealth(status="unhealthy", detail="Database unreachable.")
        status = "ok" if database.status == "healthy" else "degraded"
        return HealthResponse(status=status, version=settings.version, components={"database": database})

    return app


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


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AccountError)
    async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
        """Map domain errors to their HTTP status and machine code."""
        response = _error(exc.status_code, exc.code, exc.message, exc.detail)
        if exc.status_code == 401:
            response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with Retry-After when a rate limit is exceeded.

        Synchronous: SlowAPIMiddleware only calls sync handlers for the
        general limit and falls back to its own plain response otherwise.
        """
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error(429, "rate_limited", "Too many requests.", str(exc))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 when the request body or query params have the wrong shape."""
        return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The traceback goes to the log only; the client gets a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "internal_error", "An unexpected error occurred.")
