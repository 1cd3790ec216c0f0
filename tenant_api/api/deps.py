"""
API Dependencies

Reusable FastAPI dependencies for tenant context, tenant store sessions and
authentication.

PATTERN: the tenant context flows explicitly from request.state through
these dependencies into every session and service. Nothing reads "the
current tenant" from module state.
"""
from typing import Any, Dict, Iterator
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from tenant_api.core.context import RequestTenantContext
from tenant_api.core.exceptions import AuthenticationError, TenantIsolationError
from tenant_api.core.security import TENANT_CLAIM, decode_access_token
from tenant_api.database import tenant_session
from tenant_api.services.auth import AuthService
from tenant_api.utils.logging import log_security_event
import logging

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_tenant_context(request: Request) -> RequestTenantContext:
    """
    Get the tenant context of this request.

    This is set by TenantMiddleware and should always be present for
    tenant routes.

    CRITICAL: This is a key part of tenant isolation.
    """
    context = getattr(request.state, "tenant_context", None)
    if not context:
        logger.error("No tenant context in request state - middleware may have failed")
        raise TenantIsolationError("Tenant context not available")
    return context


def get_tenant_db(
    context: RequestTenantContext = Depends(get_tenant_context)
) -> Iterator[Session]:
    """
    Session bound to the request's tenant store.

    The session is automatically closed after the request completes.
    """
    db = tenant_session(context.connection_url)
    try:
        yield db
    finally:
        db.close()


def get_auth_service(
    context: RequestTenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_tenant_db)
) -> AuthService:
    return AuthService(db, context.tenant_code)


def get_current_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    context: RequestTenantContext = Depends(get_tenant_context)
) -> Dict[str, Any]:
    """
    Verified claims of the bearer access token.

    SECURITY: a token issued for one tenant is rejected on any other
    tenant's requests, even when the X-Tenant-Code header is what routed
    the request.
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")

    token_tenant = payload.get(TENANT_CLAIM)

    # CRITICAL SECURITY CHECK: Verify token's tenant matches request tenant
    if token_tenant != context.tenant_code:
        log_security_event(
            "tenant_isolation_violation",
            {
                "user_id": payload.get("sub"),
                "token_tenant": token_tenant,
                "tenant_code": context.tenant_code,
            },
            logger
        )
        raise TenantIsolationError("Token tenant mismatch")

    return payload
