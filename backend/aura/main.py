from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .core.database import create_db_and_tables, create_db_engine
from .core.errors import AuthError, auth_error_handler, unhandled_exception_handler
from .core.init_db import init_db
from .core.log import configure_logging
from .core.settings import Settings, settings as default_settings
from .auth.tokens import TokenService
from .ratelimit.limiter import RateLimiter, auth_policy, general_policy, match_paths, strict_policy
from .ratelimit.middleware import RateLimitMiddleware
from .ratelimit.store import create_counter_store
from .audit.middleware import AuditLogMiddleware
from .security.dependencies import sanitize_path_params
from .security.middleware import (
    CSRFMiddleware,
    RequestTimeoutMiddleware,
    SanitizeInputMiddleware,
    SecurityHeadersMiddleware,
)

from .auth.router import router as auth_router
from .users.router import router as users_router
from .audit.router import router as audit_router

logger = logging.getLogger(__name__)

MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")

@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables(app.state.engine)
    init_db(app.state.engine, app.state.settings)
    logger.info("%s started (environment=%s)", app.state.settings.PROJECT_NAME, app.state.settings.ENVIRONMENT)
    yield
    app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the API with its full security middleware stack.

    Middleware runs outermost first: security headers, CORS, request audit log,
    timeout, CSRF, rate limits (general, auth, strict), input
    sanitization, then the route dependencies.
    """
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        lifespan=lifespan,
        dependencies=[Depends(sanitize_path_params)],
    )
    app.state.settings = settings
    app.state.engine = create_db_engine(settings.DATABASE_URL)
    # Fails here, before serving anything, when production has no usable secret
    app.state.token_service = TokenService.from_settings(settings)
    app.state.counter_store = create_counter_store(settings.RATE_LIMIT_STORAGE_URL)
    app.state.started_at = time.monotonic()

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    store = app.state.counter_store
    # add_middleware wraps the current stack: the last one added runs first
    app.add_middleware(SanitizeInputMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        limiter=RateLimiter(strict_policy(settings), store),
        applies_to=match_paths("/api/users", methods=MUTATING_METHODS),
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiter=RateLimiter(auth_policy(settings), store),
        applies_to=match_paths("/api/auth/login", methods=("POST",)),
    )
    app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(general_policy(settings), store))
    app.add_middleware(CSRFMiddleware, allowed_origins=settings.cors_origins, enforce=settings.is_production)
    app.add_middleware(RequestTimeoutMiddleware, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    app.add_middleware(AuditLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(audit_router)

    @app.get("/health", tags=["health"])
    @app.get("/api/health", tags=["health"])
    def health(request: Request):
        database = "connected"
        try:
            with request.app.state.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Health check could not reach the database")
            database = "unavailable"
        return {
            "status": "ok" if database == "connected" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "environment": request.app.state.settings.ENVIRONMENT,
            "database": database,
        }

    return app


def run():
    import uvicorn

    uvicorn.run(
        "aura.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        server_header=False,
    )
