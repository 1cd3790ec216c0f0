"""
Tenant Model

The tenant directory row: maps a tenant code to the database that holds the
tenant's data, plus the tenant's activation status.

ARCHITECTURAL DECISION: database per tenant. The platform database only
stores this directory; everything else lives in the tenant's own store.
Rows are written by the provisioning service and are read-only here.
"""
from sqlalchemy import Column, String, DateTime, Integer, Index, Enum as SQLEnum
from tenant_api.database import Base, utcnow
import enum
import uuid


class TenantStatus(str, enum.Enum):
    """
    Lifecycle of a tenant.

    Only ACTIVE tenants are routable. A PROVISIONING tenant may not have a
    database yet; SUSPENDED and DELETED ones keep their row for audit.
    """
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Stable short code used by clients to select the tenant
    tenant_code = Column(String(64), unique=True, nullable=False, index=True)

    company_name = Column(String(255), nullable=False)
    legal_name = Column(String(255), nullable=True)
    admin_email = Column(String(255), nullable=True)

    status = Column(
        SQLEnum(TenantStatus),
        default=TenantStatus.PROVISIONING,
        nullable=False,
        index=True
    )

    # Database connection info
    db_name = Column(String(128), nullable=False)
    db_host = Column(String(255), nullable=True)
    db_port = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=True)

    __table_args__ = (
        # The routing query: active tenant by code
        Index('idx_tenant_code_status', 'tenant_code', 'status'),
    )

    def __repr__(self):
        return f"<Tenant {self.tenant_code} ({self.status})>"
