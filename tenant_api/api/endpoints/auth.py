"""
Authentication Endpoints

Login, refresh-token rotation and the current identity.

By the time these run, TenantMiddleware has resolved the tenant and the
session handed to AuthService is bound to that tenant's store.

These are plain `def` handlers: the credential service uses synchronous
SQLAlchemy and FastAPI runs them on its worker thread pool.
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends

from tenant_api.core.context import RequestTenantContext
from tenant_api.core.exceptions import AUTH_FAILED_MESSAGE, AuthenticationError
from tenant_api.core.security import TENANT_CLAIM
from tenant_api.api.deps import get_auth_service, get_current_claims, get_tenant_context
from tenant_api.schemas.auth import (
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
)
from tenant_api.services.auth import AuthFailure, AuthService
from tenant_api.utils.logging import log_security_event, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    context: RequestTenantContext = Depends(get_tenant_context)
):
    """
    Authenticate a user of the resolved tenant.

    SECURITY: every failure returns the same 401 so callers cannot tell an
    unknown email from a wrong password, an inactive or a locked account.
    The specific reason goes to the security log only.
    """
    result = auth.login(credentials.email, credentials.password)

    if isinstance(result, AuthFailure):
        log_security_event(
            "failed_login",
            {
                "error_kind": result.kind.value,
                "tenant_code": context.tenant_code,
                "user_id": result.user_id,
            },
            logger
        )
        raise AuthenticationError(AUTH_FAILED_MESSAGE)

    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_at=result.tokens.expires_at,
        user_id=result.user_id,
        email=result.email,
        full_name=result.full_name,
        roles=result.roles,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    context: RequestTenantContext = Depends(get_tenant_context)
):
    """
    Exchange a refresh token for a new access/refresh pair.

    The presented token is revoked in the same transaction; presenting it
    again fails.
    """
    result = auth.refresh(body.refresh_token)

    if isinstance(result, AuthFailure):
        log_security_event(
            "failed_refresh",
            {
                "error_kind": result.kind.value,
                "tenant_code": context.tenant_code,
                "user_id": result.user_id,
            },
            logger
        )
        raise AuthenticationError(AUTH_FAILED_MESSAGE)

    return TokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_at=result.expires_at,
    )


@router.get("/me", response_model=CurrentUserResponse)
def read_current_user(claims: Dict[str, Any] = Depends(get_current_claims)):
    """Identity of the bearer token, checked against the request's tenant."""
    return CurrentUserResponse(
        user_id=claims["sub"],
        email=claims.get("email", ""),
        full_name=claims.get("name", ""),
        roles=claims.get("roles", []),
        tenant_code=claims[TENANT_CLAIM],
    )
