"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1 import api_router
from app.core.config import settings
from app.core.errors import (
    APIException,
    ErrorCode,
    api_exception_handler,
    create_error_response,
    http_exception_handler,
)
from app.core.metrics import MetricsMiddleware, get_metrics
from app.core.middleware import (
    SecurityHeadersMiddleware,
    TokenRedactionMiddleware,
    install_token_redaction_logging,
    redact_exception_args,
    redact_token_from_path,
)
from app.core.rate_limit import RateLimits, limiter
from app.db.session import Base, engine
from app.schemas.common import HealthResponse
from app.scheduler import shutdown_scheduler, start_scheduler
from app.services.notifier import scan_broadcaster

# Import all models so they're registered with Base.metadata
from app.models import access_token, entity, profile_session  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Structured JSON logs for the aggregation pipeline
    from app.core.logging_config import configure_logging
    configure_logging()

    # Access tokens travel in URL paths; keep them out of server logs
    install_token_redaction_logging()
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION}",
        extra={"event_type": "system.startup", "environment": settings.ENVIRONMENT},
    )

    # IMPORTANT: Only auto-create tables in development/local environments
    # In production, use Alembic migrations: alembic upgrade head
    if settings.ENVIRONMENT in ("local", "development", "dev"):
        logger.warning("Auto-creating database tables (development mode)")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    else:
        logger.info("Skipping auto-create. Use Alembic migrations.")

    if settings.SCHEDULER_ENABLED:
        await start_scheduler()

    yield

    # Shutdown
    logger.info("Shutting down...", extra={"event_type": "system.shutdown"})
    if settings.SCHEDULER_ENABLED:
        await shutdown_scheduler()
    await scan_broadcaster.drain()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Secure NFC tag resolution to student and artist profiles",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json" if settings.EXPOSE_DOCS else None,
    docs_url=f"{settings.API_V1_PREFIX}/docs" if settings.EXPOSE_DOCS else None,
    redoc_url=f"{settings.API_V1_PREFIX}/redoc" if settings.EXPOSE_DOCS else None,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Standardized error envelope
app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)

# CORS middleware - restricted methods for security
# Only allow methods actually used by the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Security headers middleware - adds standard security headers to all responses
app.add_middleware(SecurityHeadersMiddleware)

# Token redaction middleware - no-referrer / no-store on profile token URLs
app.add_middleware(TokenRedactionMiddleware)

# Request metrics (paths are normalized so tokens never become label values)
app.add_middleware(MetricsMiddleware)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions.

    Access tokens are redacted from the exception and the logged path.
    """
    exc = redact_exception_args(exc)
    redacted_path = redact_token_from_path(request.url.path)
    logger.error(
        f"Unhandled error on {request.method} {redacted_path}: {type(exc).__name__}",
        exc_info=exc,
        extra={"event_type": "system.error.unhandled"},
    )

    message = "An unexpected error occurred"
    if settings.DEBUG:
        message = redact_token_from_path(str(exc))

    return JSONResponse(
        status_code=500,
        content=create_error_response(code=ErrorCode.INTERNAL_ERROR, message=message),
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """
    Health check endpoint with real connectivity verification.

    Executes SELECT 1 against the database and returns 503 Service
    Unavailable when it fails so load balancers can detect it.
    """
    from sqlalchemy import text
    from app.db.session import AsyncSessionLocal

    is_production = settings.ENVIRONMENT == "production"
    db_status = "disconnected"
    overall_status = "healthy"

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            db_status = "connected"
    except Exception as e:
        # SECURITY: Hide error details in production
        db_status = "error" if is_production else f"error: {str(e)[:50]}"
        overall_status = "unhealthy"

    response = HealthResponse(
        status=overall_status,
        version=settings.APP_VERSION,
        database=db_status,
        timestamp=datetime.now(timezone.utc),
    )

    if overall_status == "unhealthy":
        return JSONResponse(
            status_code=503,
            content=response.model_dump(mode="json"),
        )

    return response


if settings.EXPOSE_METRICS:
    @app.get("/metrics", include_in_schema=False)
    @limiter.limit(RateLimits.MONITORING)
    async def metrics(request: Request):
        """Prometheus scrape endpoint."""
        return get_metrics()


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }
