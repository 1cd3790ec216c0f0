"""
Tenant Request Pipeline

Everything that has to happen before a tenant request reaches its endpoint:

    Start -> TenantResolved -> StoreVerified -> SchemaReconciled -> Dispatched

Any stage can abort with a PipelineFailure, which carries the error kind,
the HTTP status and the message shown to the caller. The pipeline itself
never raises for expected failures; only genuine faults propagate, and the
application's catch-all handler turns those into a generic 500.

Blocking work (directory lookup, catalog check, DDL) runs on Starlette's
worker thread pool so the event loop keeps serving other tenants.
"""
import enum
from dataclasses import dataclass
from typing import Optional
from fastapi import Request, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from tenant_api.config import Settings
from tenant_api.core.context import RequestTenantContext
from tenant_api.core.exceptions import ErrorKind, StoreMissingError
from tenant_api.services.catalog import StoreCatalog
from tenant_api.services.directory import TenantDirectory
from tenant_api.services.resolver import resolve_tenant_code
from tenant_api.services.schema import SchemaReconciler
import logging

logger = logging.getLogger(__name__)


class PipelineStage(str, enum.Enum):
    START = "Start"
    TENANT_RESOLVED = "TenantResolved"
    STORE_VERIFIED = "StoreVerified"
    SCHEMA_RECONCILED = "SchemaReconciled"
    DISPATCHED = "Dispatched"


@dataclass(frozen=True)
class PipelineFailure:
    kind: ErrorKind
    status_code: int
    message: str
    stage: PipelineStage


@dataclass(frozen=True)
class PipelineResult:
    stage: PipelineStage
    context: Optional[RequestTenantContext] = None
    failure: Optional[PipelineFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def missing_tenant_message() -> str:
    return "Tenant code is required"


def tenant_not_found_message(tenant_code: str) -> str:
    return (
        f"Tenant '{tenant_code}' not found or not active. "
        "Please verify the tenant code or contact support."
    )


def store_missing_message(tenant_code: str) -> str:
    return (
        f"Tenant database not found. The tenant '{tenant_code}' may not have been "
        "fully provisioned. Please contact support or re-register the tenant."
    )


class TenantPipeline:
    def __init__(
        self,
        settings: Settings,
        directory: TenantDirectory,
        catalog: StoreCatalog,
        reconciler: SchemaReconciler,
    ):
        self.settings = settings
        self.directory = directory
        self.catalog = catalog
        self.reconciler = reconciler

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantPipeline":
        catalog = StoreCatalog(settings)
        return cls(
            settings=settings,
            directory=TenantDirectory(),
            catalog=catalog,
            reconciler=SchemaReconciler(catalog),
        )

    async def run(self, request: Request) -> PipelineResult:
        stage = PipelineStage.START
        resolution = await resolve_tenant_code(request)
        if resolution is None:
            logger.warning(
                f"No tenant code in request: {request.method} {request.url.path}",
                extra={"error_kind": ErrorKind.MISSING_TENANT.value, "path": request.url.path}
            )
            return self._abort(stage, ErrorKind.MISSING_TENANT, status.HTTP_400_BAD_REQUEST, missing_tenant_message())

        tenant_code = resolution.tenant_code
        log_extra = {"tenant_code": tenant_code, "path": request.url.path}

        try:
            record = await run_in_threadpool(self.directory.lookup, tenant_code)
        except SQLAlchemyError as e:
            logger.error(
                f"Tenant directory lookup failed for {tenant_code}: {e}",
                extra={**log_extra, "error_kind": ErrorKind.DIRECTORY_UNAVAILABLE.value}
            )
            return self._abort(stage, ErrorKind.DIRECTORY_UNAVAILABLE, status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to resolve tenant")

        if record is None:
            logger.warning(
                f"Tenant not found or inactive: {tenant_code} (from {resolution.source.value})",
                extra={**log_extra, "error_kind": ErrorKind.TENANT_NOT_FOUND.value}
            )
            return self._abort(stage, ErrorKind.TENANT_NOT_FOUND, status.HTTP_404_NOT_FOUND, tenant_not_found_message(tenant_code))

        stage = PipelineStage.TENANT_RESOLVED
        context = RequestTenantContext(
            tenant_code=record.tenant_code,
            db_name=record.db_name,
            connection_url=self.settings.tenant_database_url(record.db_name),
        )

        # CRITICAL: never connect to a store the server does not have
        exists = await run_in_threadpool(self.catalog.exists, record.db_name)
        if not exists:
            logger.error(
                f"Tenant {tenant_code} is active but database {record.db_name} does not exist",
                extra={**log_extra, "db_name": record.db_name, "error_kind": ErrorKind.STORE_INCONSISTENT.value}
            )
            return self._abort(stage, ErrorKind.STORE_INCONSISTENT, status.HTTP_500_INTERNAL_SERVER_ERROR, store_missing_message(tenant_code))

        stage = PipelineStage.STORE_VERIFIED
        try:
            await run_in_threadpool(self.reconciler.reconcile_baseline, context)
            await run_in_threadpool(self.reconciler.reconcile_feature, context, request.url.path)
        except StoreMissingError:
            return self._abort(stage, ErrorKind.SCHEMA_FATAL, status.HTTP_500_INTERNAL_SERVER_ERROR, store_missing_message(tenant_code))

        logger.debug(f"Request for tenant: {tenant_code} ({record.db_name})", extra=log_extra)
        return PipelineResult(stage=PipelineStage.SCHEMA_RECONCILED, context=context)

    @staticmethod
    def _abort(stage: PipelineStage, kind: ErrorKind, status_code: int, message: str) -> PipelineResult:
        return PipelineResult(
            stage=stage,
            failure=PipelineFailure(kind=kind, status_code=status_code, message=message, stage=stage),
        )
