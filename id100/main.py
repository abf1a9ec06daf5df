import logging
import warnings
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from id100.config import DEV_SESSION_SECRET, settings
from id100.core.errors import MisConfigurationError, register_error_handlers
from id100.core.middleware import AccessLogMiddleware, RequestIDMiddleware
from id100.core.rate_limit import RateLimitMiddleware
from id100.core.session import SESSION_COOKIE_NAME, SESSION_MAX_AGE
from id100.dependencies import engine
from id100.routers import admin, invitations, public, upload

# The cookie jar is only as trustworthy as its signing secret
if settings.is_production and not settings.session_secret:
    raise MisConfigurationError(
        "SESSION_SECRET must be set to a secure random value in production. "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
    )

if not settings.session_secret:
    warnings.warn("SESSION_SECRET is not set; using the development secret.", stacklevel=1)

logger = logging.getLogger("id100")


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Refuse to start without admin credentials, then create missing tables."""
    if not settings.admin_configured:
        raise MisConfigurationError("ADMIN_USERNAME and ADMIN_PASSWORD must be set")
    from id100.models.base import Base
    # Import all models so Base.metadata is populated
    import id100.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified/created")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Middleware: order matters (last added = outermost = first to execute)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret or DEV_SESSION_SECRET,
    session_cookie=SESSION_COOKIE_NAME,
    max_age=SESSION_MAX_AGE,
    same_site="lax",
    https_only=settings.is_production,
)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIDMiddleware)

# Error handlers
register_error_handlers(app)

# Routers
app.include_router(public.router)
app.include_router(upload.router)
app.include_router(invitations.router)
app.include_router(admin.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.app_name, "version": "0.1.0"}
