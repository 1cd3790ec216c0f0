"""
Main FastAPI Application

Entry point for the multi-tenant HR API.
Configures middleware, routes, error handlers, and startup/shutdown events.

Request flow:
    CORS -> timing -> TenantMiddleware -> RateLimitMiddleware -> endpoint

Every error leaves as `{"error": "<message>"}`. Request validation failures
also carry the field errors under "details"; the 429 from RateLimitMiddleware
adds "retryAfter".
"""
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
from contextlib import asynccontextmanager

from tenant_api import __version__
from tenant_api.config import get_settings
from tenant_api.database import engine, init_db
from tenant_api.middleware.tenant import TenantMiddleware
from tenant_api.middleware.rate_limit import RateLimitMiddleware
from tenant_api.services.pipeline import TenantPipeline
from tenant_api.utils.logging import setup_logging, get_logger
from tenant_api.core.exceptions import (
    AuthenticationError,
    ErrorKind,
    TenantIsolationError
)

# Import routers
from tenant_api.api.endpoints import auth, tenant

settings = get_settings()

# Setup logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Platform directory tables (dev only - tenant stores are provisioned elsewhere)
    if settings.ENVIRONMENT == "development":
        logger.warning("Initializing platform tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application")
    engine.dispose()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Multi-Tenant HR API",
    description="Database-per-tenant HR backend: tenant resolution, schema reconciliation and session issuance",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# One pipeline per application; it keeps no per-request state
app.state.tenant_pipeline = TenantPipeline.from_settings(settings)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================
# NOTE: the middleware added last runs first.

# Rate limiting keys on the tenant context, so it must sit inside TenantMiddleware
app.add_middleware(RateLimitMiddleware)

# CRITICAL: Tenant middleware resolves the tenant store before any route runs
app.add_middleware(TenantMiddleware)


# Request timing middleware (for monitoring)
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header to track request duration."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# CORS Middleware (outermost, so preflight never reaches tenant resolution)
# SECURITY: In production, restrict CORS_ORIGINS to specific domains
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if settings.ENVIRONMENT != "development" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _tenant_code(request: Request):
    context = getattr(request.state, "tenant_context", None)
    return context.tenant_code if context else None


@app.exception_handler(TenantIsolationError)
async def tenant_isolation_error_handler(request: Request, exc: TenantIsolationError):
    """
    Handle tenant isolation violations.

    CRITICAL: These should be logged and alerted on immediately.
    Tenant isolation violations are serious security issues.
    """
    logger.error(
        f"TENANT ISOLATION VIOLATION: {exc.detail}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "tenant_code": _tenant_code(request)
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    """Handle authentication errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers or {}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies keep the same envelope, with field errors attached."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation error", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Keep the `{"error": ...}` envelope for every HTTP error."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None) or {}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    SECURITY: Don't expose internal errors in production.
    Log full details but return generic error to client.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "tenant_code": _tenant_code(request),
            "error_kind": ErrorKind.UNHANDLED_FAULT.value
        }
    )

    if settings.DEBUG:
        # In debug mode, return error details
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc),
                "type": type(exc).__name__
            }
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )


# ============================================================================
# ROUTES
# ============================================================================

# Health check endpoint (no tenant, no auth)
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


# Root endpoint
@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Multi-Tenant HR API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Register API routers
# All routes will be under /api prefix for versioning
app.include_router(auth.router, prefix="/api/v1")
app.include_router(tenant.router, prefix="/api/v1")


# ============================================================================
# STARTUP MESSAGE
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info("Multi-Tenant HR API")
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Platform database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info("=" * 80)

    uvicorn.run(
        "tenant_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
