"""
Refresh Token Model

Opaque, long-lived session tokens. A token is exchanged exactly once: the
refresh that consumes it stamps revoked_at / revoked_reason and issues the
next token of the chain.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from tenant_api.database import TenantBase, utcnow
import uuid


class RefreshToken(TenantBase):
    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    token = Column(String(255), nullable=False, unique=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revoked_reason = Column(Text, nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} revoked={self.revoked_at is not None}>"

    def is_usable(self, now) -> bool:
        return self.revoked_at is None and self.expires_at >= now
