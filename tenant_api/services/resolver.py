"""
Request Tenant Resolver

Extracts the tenant code a request is for. First match wins:

1. Login body: POST to a path containing /auth/login, JSON field
   "tenantCode" (or "TenantCode"). The caller has no token yet.
2. Header: X-Tenant-Code.
3. Token: "tenantCode" claim of a verified bearer access token.

SECURITY: the claim is only trusted after the token signature, expiry,
issuer and audience check out. An unverifiable token contributes nothing.

Documentation, health and CORS preflight requests are exempt and carry no
tenant at all.
"""
import enum
import json
from dataclasses import dataclass
from typing import Optional
from fastapi import Request
from tenant_api.core.security import TENANT_CLAIM, bearer_token, decode_access_token
import logging

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-Code"
LOGIN_PATH = "/auth/login"
BODY_FIELDS = ("tenantCode", "TenantCode")
# Matched as whole path segments anywhere in the path
EXEMPT_SEGMENTS = frozenset({"health", "swagger"})
# FastAPI serves its own documentation at the root only
DOCS_PATHS = frozenset({"/docs", "/docs/oauth2-redirect", "/redoc", "/openapi.json"})


class TenantSource(str, enum.Enum):
    BODY = "body"
    HEADER = "header"
    TOKEN = "token"


@dataclass(frozen=True)
class TenantCodeResolution:
    tenant_code: str
    source: TenantSource


def is_exempt(request: Request) -> bool:
    if request.method == "OPTIONS":
        return True
    path = request.url.path.lower().rstrip("/") or "/"
    if path == "/" or path in DOCS_PATHS:
        return True
    return any(segment in EXEMPT_SEGMENTS for segment in path.split("/"))


def _clean(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def tenant_code_from_body(body: bytes) -> Optional[str]:
    """Read the tenant code from a login payload; malformed bodies yield None."""
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        logger.debug("Login body is not valid JSON, falling back to header")
        return None

    if not isinstance(payload, dict):
        return None

    for field_name in BODY_FIELDS:
        code = _clean(payload.get(field_name))
        if code:
            return code
    return None


def tenant_code_from_token(authorization: Optional[str]) -> Optional[str]:
    token = bearer_token(authorization)
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        logger.debug("Bearer token failed verification, ignoring for tenant resolution")
        return None

    return _clean(payload.get(TENANT_CLAIM))


async def resolve_tenant_code(request: Request) -> Optional[TenantCodeResolution]:
    """
    Resolve the tenant code of a request, or None when no source has one.

    NOTE: Reading the body here is safe for the endpoint: Starlette caches
    it on the request and replays it downstream.
    """
    if request.method == "POST" and LOGIN_PATH in request.url.path.lower():
        code = tenant_code_from_body(await request.body())
        if code:
            return TenantCodeResolution(code, TenantSource.BODY)

    code = _clean(request.headers.get(TENANT_HEADER))
    if code:
        return TenantCodeResolution(code, TenantSource.HEADER)

    code = tenant_code_from_token(request.headers.get("Authorization"))
    if code:
        return TenantCodeResolution(code, TenantSource.TOKEN)

    return None
