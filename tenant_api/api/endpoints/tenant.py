"""
Tenant Endpoints

Lets a client confirm which tenant and store its requests resolve to.
"""
from fastapi import APIRouter, Depends

from tenant_api.core.context import RequestTenantContext
from tenant_api.api.deps import get_tenant_context
from tenant_api.schemas.tenant import TenantContextResponse

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get("", response_model=TenantContextResponse)
def read_tenant_context(context: RequestTenantContext = Depends(get_tenant_context)):
    return TenantContextResponse(tenant_code=context.tenant_code, database_name=context.db_name)
