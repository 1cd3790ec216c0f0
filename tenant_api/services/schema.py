"""
Schema Reconciler

Brings a tenant store up to the structure this service expects, in place,
on the request path.

Stores are provisioned at different times, so an older store may be missing
columns or whole feature tables. Nothing here removes or rewrites existing
structure: every operation is "add if absent", so applying a patch any
number of times, in any order, ends in the same shape.

Two kinds of patch:
- BASELINE_PATCH: ordered EnsureColumn operations, applied to every store on
  every request.
- FEATURE_PATCHES: keyed by a path segment. When a request path contains the
  segment, the feature's tables are created if its sentinel table is absent,
  then its own column operations are applied.

Failure policy:
- The store does not exist: StoreMissingError, fatal for the request.
- Anything else: logged, reported as a warning and the request continues.

PERFORMANCE NOTE: each operation inspects the table first, so a store that
is already up to date costs a few catalog reads and no DDL.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
from sqlalchemy import DateTime, Integer, MetaData, String, Text, inspect, text
from sqlalchemy.engine import Connection, Dialect, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import TypeEngine
from tenant_api.core.context import RequestTenantContext
from tenant_api.core.exceptions import ErrorKind, StoreMissingError
from tenant_api.database import get_tenant_engine, is_missing_store_error
from tenant_api.models.recruitment import recruitment_metadata
from tenant_api.services.catalog import StoreCatalog
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnsureColumn:
    """Add `column` to `table` unless it is already there."""
    table: str
    column: str
    type_: TypeEngine
    nullable: bool = True
    server_default: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.table}.{self.column}"


@dataclass(frozen=True)
class FeaturePatch:
    name: str
    path_segment: str
    metadata: MetaData
    sentinel_table: str
    columns: Tuple[EnsureColumn, ...] = ()


@dataclass
class ReconcileReport:
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


BASELINE_PATCH: Tuple[EnsureColumn, ...] = (
    EnsureColumn("user_roles", "assigned_at", DateTime(), nullable=False, server_default="CURRENT_TIMESTAMP"),
    EnsureColumn("refresh_tokens", "revoked_at", DateTime()),
    EnsureColumn("refresh_tokens", "revoked_reason", Text()),
    EnsureColumn("users", "access_failed_count", Integer(), nullable=False, server_default="0"),
    EnsureColumn("users", "lockout_end_at", DateTime()),
    EnsureColumn("users", "last_login_at", DateTime()),
)

RECRUITMENT_PATCH = FeaturePatch(
    name="recruitment",
    path_segment="/recruitment",
    metadata=recruitment_metadata,
    sentinel_table="job_requisitions",
    columns=(
        EnsureColumn("candidates", "referral_code", String(50)),
        EnsureColumn("candidates", "website", String(255)),
    ),
)

FEATURE_PATCHES: Tuple[FeaturePatch, ...] = (RECRUITMENT_PATCH,)


def add_column_ddl(op: EnsureColumn, dialect: Dialect) -> str:
    """
    ALTER TABLE statement for one operation.

    PostgreSQL gets IF NOT EXISTS so a concurrent request that added the
    column between inspection and DDL does not turn into a failure.
    """
    preparer = dialect.identifier_preparer
    if_not_exists = "IF NOT EXISTS " if dialect.name == "postgresql" else ""
    ddl = (
        f"ALTER TABLE {preparer.quote(op.table)} "
        f"ADD COLUMN {if_not_exists}{preparer.quote(op.column)} {op.type_.compile(dialect=dialect)}"
    )
    if op.server_default is not None:
        ddl += f" DEFAULT {op.server_default}"
    if not op.nullable:
        ddl += " NOT NULL"
    return ddl


def ensure_column(connection: Connection, op: EnsureColumn) -> bool:
    """
    Add one column if its table exists and the column does not.

    Returns True when DDL was executed.
    """
    inspector = inspect(connection)
    if not inspector.has_table(op.table):
        return False

    existing = {column["name"] for column in inspector.get_columns(op.table)}
    if op.column in existing:
        return False

    connection.execute(text(add_column_ddl(op, connection.dialect)))
    logger.info(f"Added column {op.name}")
    return True


def feature_for_path(path: str, features=FEATURE_PATCHES) -> Optional[FeaturePatch]:
    lowered = (path or "").lower()
    for feature in features:
        if feature.path_segment in lowered:
            return feature
    return None


class SchemaReconciler:
    """
    Applies the baseline and feature patches to one tenant store.

    `apply_op` is the routine that executes a single EnsureColumn against an
    open connection; tests replace it to exercise the failure policy.
    """

    def __init__(
        self,
        catalog: StoreCatalog,
        baseline: Tuple[EnsureColumn, ...] = BASELINE_PATCH,
        features: Tuple[FeaturePatch, ...] = FEATURE_PATCHES,
        apply_op: Callable[[Connection, EnsureColumn], bool] = ensure_column,
        engine_for: Callable[[str], Engine] = get_tenant_engine,
    ):
        self.catalog = catalog
        self.baseline = baseline
        self.features = features
        self.apply_op = apply_op
        self.engine_for = engine_for

    def reconcile_baseline(self, context: RequestTenantContext) -> ReconcileReport:
        report = ReconcileReport()
        engine = self.engine_for(context.connection_url)

        for op in self.baseline:
            self._apply(engine, context, op, report)

        return report

    def reconcile_feature(self, context: RequestTenantContext, path: str) -> Optional[ReconcileReport]:
        """Apply the feature patch selected by `path`, if any."""
        feature = feature_for_path(path, self.features)
        if feature is None:
            return None

        report = ReconcileReport()
        engine = self.engine_for(context.connection_url)

        try:
            with engine.begin() as conn:
                if inspect(conn).has_table(feature.sentinel_table):
                    report.skipped.append(feature.name)
                else:
                    logger.warning(
                        f"{feature.sentinel_table} missing in {context.db_name}, creating {feature.name} tables",
                        extra={"tenant_code": context.tenant_code, "db_name": context.db_name}
                    )
                    feature.metadata.create_all(conn, checkfirst=True)
                    report.applied.append(feature.name)
        except SQLAlchemyError as e:
            self._raise_if_store_missing(e, context)
            # Another request may have created the tables first
            if self._has_table(engine, feature.sentinel_table):
                report.skipped.append(feature.name)
            else:
                self._warn(report, context, feature.name, e)

        for op in feature.columns:
            self._apply(engine, context, op, report)

        return report

    def _apply(self, engine: Engine, context: RequestTenantContext, op: EnsureColumn, report: ReconcileReport):
        # One transaction per operation: a failed step never undoes earlier ones
        try:
            with engine.begin() as conn:
                changed = self.apply_op(conn, op)
        except SQLAlchemyError as e:
            self._raise_if_store_missing(e, context)
            self._warn(report, context, op.name, e)
            return

        if changed:
            report.applied.append(op.name)
        else:
            report.skipped.append(op.name)

    def _raise_if_store_missing(self, error: SQLAlchemyError, context: RequestTenantContext):
        if is_missing_store_error(error) or not self.catalog.exists(context.db_name):
            logger.error(
                f"Tenant database {context.db_name} disappeared during schema reconciliation",
                extra={
                    "tenant_code": context.tenant_code,
                    "db_name": context.db_name,
                    "error_kind": ErrorKind.SCHEMA_FATAL.value,
                }
            )
            raise StoreMissingError(context.db_name) from error

    @staticmethod
    def _has_table(engine: Engine, table: str) -> bool:
        try:
            with engine.connect() as conn:
                return inspect(conn).has_table(table)
        except SQLAlchemyError:
            return False

    @staticmethod
    def _warn(report: ReconcileReport, context: RequestTenantContext, step: str, error: Exception):
        logger.warning(
            f"Schema step {step} failed for {context.db_name}, continuing: {error}",
            extra={
                "tenant_code": context.tenant_code,
                "db_name": context.db_name,
                "error_kind": ErrorKind.SCHEMA_WARNING.value,
            }
        )
        report.warnings.append(step)
