"""
Database Models

Tenant lives in the platform database. User, Role, UserRole and
RefreshToken live in every tenant's own database.
"""
from tenant_api.models.tenant import Tenant, TenantStatus
from tenant_api.models.user import User, Role, UserRole
from tenant_api.models.refresh_token import RefreshToken

__all__ = ["Tenant", "TenantStatus", "User", "Role", "UserRole", "RefreshToken"]
