"""Tests for the schema reconciler and store existence checks."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import Integer, String, inspect
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError, ProgrammingError

from tenant_api.config import get_settings
from tenant_api.core.exceptions import StoreMissingError
from tenant_api.database import get_tenant_engine, is_missing_store_error
from tenant_api.models.recruitment import recruitment_metadata
from tenant_api.services.catalog import StoreCatalog
from tenant_api.services.schema import (
    BASELINE_PATCH,
    RECRUITMENT_PATCH,
    EnsureColumn,
    SchemaReconciler,
    add_column_ddl,
    feature_for_path,
)


def _columns(context, table: str) -> set[str]:
    with get_tenant_engine(context.connection_url).connect() as conn:
        return {column["name"] for column in inspect(conn).get_columns(table)}


def _tables(context) -> set[str]:
    with get_tenant_engine(context.connection_url).connect() as conn:
        return set(inspect(conn).get_table_names())


class _PgMissingDatabase(Exception):
    pgcode = "3D000"


@pytest.fixture()
def reconciler() -> SchemaReconciler:
    return SchemaReconciler(StoreCatalog(get_settings()))


class TestStoreCatalog:
    def test_existing_store(self, tenants) -> None:
        context = tenants()
        assert StoreCatalog(get_settings()).exists(context.db_name)

    def test_missing_store(self, tenants) -> None:
        context = tenants(with_store=False)
        assert not StoreCatalog(get_settings()).exists(context.db_name)


class TestBaselinePatch:
    def test_upgrades_legacy_store(self, tenants, reconciler) -> None:
        context = tenants(legacy=True)

        report = reconciler.reconcile_baseline(context)

        assert "users.access_failed_count" in report.applied
        assert "refresh_tokens.revoked_at" in report.applied
        assert "user_roles.assigned_at" in report.skipped
        assert report.ok
        assert {"access_failed_count", "lockout_end_at", "last_login_at"} <= _columns(context, "users")
        assert {"revoked_at", "revoked_reason"} <= _columns(context, "refresh_tokens")

    def test_is_idempotent(self, tenants, reconciler) -> None:
        context = tenants(legacy=True)

        reconciler.reconcile_baseline(context)
        before = {table: _columns(context, table) for table in ("users", "refresh_tokens", "user_roles")}
        second = reconciler.reconcile_baseline(context)
        after = {table: _columns(context, table) for table in ("users", "refresh_tokens", "user_roles")}

        assert second.applied == []
        assert len(second.skipped) == len(BASELINE_PATCH)
        assert before == after

    def test_current_store_needs_nothing(self, tenants, reconciler) -> None:
        report = reconciler.reconcile_baseline(tenants())
        assert report.applied == []
        assert report.ok

    def test_missing_table_is_skipped(self, tenants) -> None:
        context = tenants()
        op = EnsureColumn("no_such_table", "extra", String(10))
        report = SchemaReconciler(StoreCatalog(get_settings()), baseline=(op,)).reconcile_baseline(context)
        assert report.skipped == ["no_such_table.extra"]

    def test_step_failure_is_a_warning(self, tenants) -> None:
        context = tenants()
        catalog = MagicMock()
        catalog.exists.return_value = True
        calls = []

        def flaky_apply(conn, op):
            calls.append(op.name)
            if op.name == "refresh_tokens.revoked_at":
                raise OperationalError("ALTER TABLE", {}, Exception("lock timeout"))
            return False

        report = SchemaReconciler(catalog, apply_op=flaky_apply).reconcile_baseline(context)

        assert report.warnings == ["refresh_tokens.revoked_at"]
        assert not report.ok
        # Later steps still run
        assert calls == [op.name for op in BASELINE_PATCH]

    def test_failure_on_vanished_store_is_fatal(self, tenants) -> None:
        context = tenants()
        catalog = MagicMock()
        catalog.exists.return_value = False

        def failing_apply(conn, op):
            raise OperationalError("ALTER TABLE", {}, Exception("no such database"))

        with pytest.raises(StoreMissingError):
            SchemaReconciler(catalog, apply_op=failing_apply).reconcile_baseline(context)

    def test_missing_database_sqlstate_is_fatal(self, tenants) -> None:
        context = tenants()
        catalog = MagicMock()
        catalog.exists.return_value = True

        def failing_apply(conn, op):
            raise OperationalError("ALTER TABLE", {}, _PgMissingDatabase())

        with pytest.raises(StoreMissingError):
            SchemaReconciler(catalog, apply_op=failing_apply).reconcile_baseline(context)


class TestColumnDDL:
    def test_postgresql_tolerates_concurrent_add(self) -> None:
        op = EnsureColumn("users", "access_failed_count", Integer(), nullable=False, server_default="0")
        assert add_column_ddl(op, postgresql.dialect()) == (
            "ALTER TABLE users ADD COLUMN IF NOT EXISTS access_failed_count INTEGER DEFAULT 0 NOT NULL"
        )

    def test_sqlite_has_no_if_not_exists(self) -> None:
        op = EnsureColumn("candidates", "website", String(255))
        assert add_column_ddl(op, sqlite.dialect()) == "ALTER TABLE candidates ADD COLUMN website VARCHAR(255)"


class TestFeaturePatch:
    def test_feature_selected_by_path(self) -> None:
        assert feature_for_path("/api/v1/recruitment/jobs") is RECRUITMENT_PATCH
        assert feature_for_path("/api/v1/Recruitment") is RECRUITMENT_PATCH
        assert feature_for_path("/api/v1/auth/login") is None

    def test_other_paths_do_nothing(self, tenants, reconciler) -> None:
        context = tenants()
        assert reconciler.reconcile_feature(context, "/api/v1/tenant") is None
        assert "job_requisitions" not in _tables(context)

    def test_creates_recruitment_tables(self, tenants, reconciler) -> None:
        context = tenants()

        report = reconciler.reconcile_feature(context, "/api/v1/recruitment/jobs")

        assert "recruitment" in report.applied
        assert {"job_requisitions", "candidates", "applications", "interviews", "offers"} <= _tables(context)
        assert {"referral_code", "website"} <= _columns(context, "candidates")

    def test_is_idempotent(self, tenants, reconciler) -> None:
        context = tenants()

        reconciler.reconcile_feature(context, "/api/v1/recruitment")
        tables = _tables(context)
        second = reconciler.reconcile_feature(context, "/api/v1/recruitment")

        assert second.applied == []
        assert "recruitment" in second.skipped
        assert second.ok
        assert _tables(context) == tables

    def test_concurrent_creator_counts_as_skipped(self, tenants, reconciler) -> None:
        context = tenants()
        reconciler.reconcile_feature(context, "/api/v1/recruitment")
        checks = []

        def sentinel_missing_once(conn):
            inspector = inspect(conn)
            if not checks:
                # The other request has not committed yet when this one looks
                checks.append(conn)
                inspector.has_table = lambda table_name, schema=None: False
            return inspector

        already_exists = ProgrammingError("CREATE TABLE job_requisitions", {}, Exception("already exists"))
        with patch("tenant_api.services.schema.inspect", side_effect=sentinel_missing_once), \
                patch.object(recruitment_metadata, "create_all", side_effect=already_exists):
            report = reconciler.reconcile_feature(context, "/api/v1/recruitment")

        assert "recruitment" in report.skipped
        assert report.applied == []
        assert report.warnings == []


class TestMissingStoreClassification:
    def test_sqlstate_3d000(self) -> None:
        assert is_missing_store_error(OperationalError("SELECT 1", {}, _PgMissingDatabase()))

    def test_other_errors(self) -> None:
        assert not is_missing_store_error(OperationalError("SELECT 1", {}, Exception("database is locked")))

    def test_typed_error(self) -> None:
        assert is_missing_store_error(StoreMissingError("acme_db"))
