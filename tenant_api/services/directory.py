"""
Tenant Directory

Looks up the store of an active tenant in the platform database.

Only ACTIVE rows are returned; a tenant that is provisioning, suspended or
deleted is indistinguishable from one that does not exist. Storage errors
propagate so the pipeline can tell "not found" apart from "directory down".
"""
from dataclasses import dataclass
from typing import Callable, Optional
from sqlalchemy.orm import Session
from tenant_api.database import SessionLocal
from tenant_api.models.tenant import Tenant, TenantStatus
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantDirectoryRecord:
    tenant_code: str
    db_name: str


class TenantDirectory:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def lookup(self, tenant_code: str) -> Optional[TenantDirectoryRecord]:
        """
        Return the directory record of the active tenant with this code.

        Matching is exact after trimming surrounding whitespace.
        """
        code = (tenant_code or "").strip()
        if not code:
            return None

        with self.session_factory() as db:
            tenant = db.query(Tenant).filter(
                Tenant.tenant_code == code,
                Tenant.status == TenantStatus.ACTIVE
            ).first()

            if not tenant:
                logger.debug(f"No active tenant for code: {code}")
                return None

            return TenantDirectoryRecord(tenant_code=tenant.tenant_code, db_name=tenant.db_name)
