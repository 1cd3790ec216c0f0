"""
Tenant Middleware

Runs the tenant pipeline for every request and makes the resulting tenant
context available to the rest of the request lifecycle. This is CRITICAL for
multi-tenant isolation.

ARCHITECTURE: database per tenant. The tenant code comes from the login body,
the X-Tenant-Code header or the access token (see services/resolver.py); the
pipeline maps it to the tenant's store, checks the store exists and brings
its schema up to date.

The context is stored on request.state.tenant_context only. Concurrent
requests never share it, so two tenants served at the same moment cannot see
each other's store.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import logging

from tenant_api.services.pipeline import PipelineStage, TenantPipeline
from tenant_api.services.resolver import is_exempt

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware to resolve and validate the tenant of a request.

    SECURITY: This is the first line of defense for tenant isolation.
    If this fails, entire isolation model breaks down.
    """

    async def dispatch(self, request: Request, call_next):
        """Process each request and inject tenant context."""

        # Docs, health checks and CORS preflight carry no tenant
        if is_exempt(request):
            return await call_next(request)

        pipeline: TenantPipeline = request.app.state.tenant_pipeline
        result = await pipeline.run(request)

        if not result.ok:
            failure = result.failure
            return JSONResponse(
                status_code=failure.status_code,
                content={"error": failure.message}
            )

        request.state.tenant_context = result.context

        logger.debug(
            f"{PipelineStage.DISPATCHED.value}: {request.method} {request.url.path}",
            extra={"tenant_code": result.context.tenant_code}
        )
        return await call_next(request)
