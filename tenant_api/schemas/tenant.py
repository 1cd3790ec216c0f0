"""
Tenant Schemas
"""
from tenant_api.schemas.auth import CamelModel


class TenantContextResponse(CamelModel):
    """The tenant a request was resolved to."""
    tenant_code: str
    database_name: str
