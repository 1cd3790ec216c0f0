"""Shared pytest fixtures.

Every store is a SQLite file in a temporary directory: the platform
directory in platform.db and one file per tenant store. The environment is
set before anything from tenant_api is imported, because settings and the
platform engine are created at import time.
"""

import os
import shutil
import tempfile
import uuid

_STORE_DIR = tempfile.mkdtemp(prefix="tenant-api-tests-")

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_STORE_DIR}/platform.db"
os.environ["TENANT_DATABASE_URL_TEMPLATE"] = f"sqlite:///{_STORE_DIR}/{{db_name}}.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["MAX_FAILED_LOGIN_ATTEMPTS"] = "0"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from tenant_api.config import get_settings
from tenant_api.core.context import RequestTenantContext
from tenant_api.database import Base, SessionLocal, TenantBase, engine, get_tenant_engine, tenant_session
from tenant_api.models.tenant import Tenant, TenantStatus
from tenant_api.models.user import User
from tenant_api.services.auth import AuthService

# Schema of a store provisioned before lockout tracking and refresh-token
# revocation existed. user_roles.assigned_at is already present: SQLite
# cannot add a NOT NULL column with a CURRENT_TIMESTAMP default.
LEGACY_STORE_DDL = (
    """
    CREATE TABLE users (
        id VARCHAR(36) PRIMARY KEY,
        email VARCHAR(255) NOT NULL UNIQUE,
        password_hash VARCHAR(255) NOT NULL,
        full_name VARCHAR(255) NOT NULL DEFAULT '',
        is_active BOOLEAN NOT NULL DEFAULT 1,
        email_confirmed BOOLEAN NOT NULL DEFAULT 0,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME
    )
    """,
    """
    CREATE TABLE roles (
        id VARCHAR(36) PRIMARY KEY,
        name VARCHAR(100) NOT NULL UNIQUE,
        description VARCHAR(255)
    )
    """,
    """
    CREATE TABLE user_roles (
        user_id VARCHAR(36) NOT NULL REFERENCES users(id),
        role_id VARCHAR(36) NOT NULL REFERENCES roles(id),
        assigned_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, role_id)
    )
    """,
    """
    CREATE TABLE refresh_tokens (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(36) NOT NULL REFERENCES users(id),
        token VARCHAR(255) NOT NULL UNIQUE,
        created_at DATETIME NOT NULL,
        expires_at DATETIME NOT NULL
    )
    """,
)


@pytest.fixture(scope="session", autouse=True)
def platform_tables():
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()
    shutil.rmtree(_STORE_DIR, ignore_errors=True)


@pytest.fixture()
def tenants():
    """Factory registering tenants in the directory, with or without a store.

    Codes and database names get a random suffix so tests never share a
    store. Directory rows are removed afterwards.
    """
    created: list[str] = []
    settings = get_settings()

    def _create(
        prefix: str = "acme",
        status: TenantStatus = TenantStatus.ACTIVE,
        with_store: bool = True,
        legacy: bool = False,
    ) -> RequestTenantContext:
        suffix = uuid.uuid4().hex[:8]
        code = f"{prefix}-{suffix}"
        db_name = f"{prefix}_db_{suffix}"

        with SessionLocal() as db:
            tenant = Tenant(
                tenant_code=code,
                company_name=f"{prefix.title()} Inc",
                status=status,
                db_name=db_name,
            )
            db.add(tenant)
            db.commit()
            created.append(tenant.id)

        context = RequestTenantContext(
            tenant_code=code,
            db_name=db_name,
            connection_url=settings.tenant_database_url(db_name),
        )

        if with_store:
            store = get_tenant_engine(context.connection_url)
            if legacy:
                with store.begin() as conn:
                    for statement in LEGACY_STORE_DDL:
                        conn.execute(text(statement))
            else:
                TenantBase.metadata.create_all(bind=store)

        return context

    yield _create

    with SessionLocal() as db:
        db.query(Tenant).filter(Tenant.id.in_(created)).delete(synchronize_session=False)
        db.commit()


@pytest.fixture()
def users():
    """Factory creating a credential inside a tenant store; returns its id."""

    def _create(
        context: RequestTenantContext,
        email: str = "a@x.com",
        password: str = "right",
        full_name: str = "Alice Example",
        roles: tuple = ("Employee",),
        is_active: bool = True,
    ) -> str:
        with tenant_session(context.connection_url) as db:
            user = AuthService(db, context.tenant_code).create_user(email, password, full_name, roles)
            if not is_active:
                user.is_active = False
                db.commit()
            return user.id

    return _create


@pytest.fixture()
def load_user():
    """Fetch a credential row straight from a tenant store."""

    def _load(context: RequestTenantContext, email: str = "a@x.com") -> User:
        with tenant_session(context.connection_url) as db:
            return db.query(User).filter(User.email == email).one()

    return _load


@pytest_asyncio.fixture()
async def client():
    from tenant_api.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac
