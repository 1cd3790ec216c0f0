"""
User Model

Credentials and roles stored inside each tenant's own database.

IMPORTANT: there is no tenant_id column. Isolation comes from the database
the session is bound to, which the tenant pipeline chose for this request.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from tenant_api.database import TenantBase, utcnow
import uuid


class User(TenantBase):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Stored lower-cased; lookups normalize the same way
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="")

    is_active = Column(Boolean, default=True, nullable=False)
    email_confirmed = Column(Boolean, default=False, nullable=False)

    # Failed login tracking. Updated with single UPDATE statements so
    # concurrent attempts never lose an increment.
    access_failed_count = Column(Integer, default=0, nullable=False, server_default="0")
    lockout_end_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)
    last_login_at = Column(DateTime, nullable=True)

    roles = relationship("Role", secondary="user_roles", lazy="selectin")
    refresh_tokens = relationship("RefreshToken", back_populates="user")

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def role_names(self) -> list[str]:
        return sorted(role.name for role in self.roles if role.name)

    def is_locked_out(self, now) -> bool:
        return self.lockout_end_at is not None and self.lockout_end_at > now


class Role(TenantBase):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Role {self.name}>"


class UserRole(TenantBase):
    __tablename__ = "user_roles"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
