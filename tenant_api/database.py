"""
Database Configuration and Session Management

Two kinds of database live behind this module:

- The platform database, which holds the tenant directory. It has one
  process-wide engine and session factory, as any single-database app would.
- One store per tenant. Engines for those are created on first use and
  cached by connection URL. Which URL a request uses is decided per request
  by the tenant pipeline and travels on request.state, never through a
  module-level variable.

Storage failures that mean "this database does not exist" are classified
here so callers never inspect error messages.
"""
from datetime import datetime, timezone
from functools import lru_cache
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool
from tenant_api.config import get_settings
from tenant_api.core.exceptions import StoreMissingError
import logging

logger = logging.getLogger(__name__)

settings = get_settings()

# SQLSTATE for "database does not exist"
INVALID_CATALOG_NAME = "3D000"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns of the stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _create_engine(url: str, pool_size: int, max_overflow: int) -> Engine:
    """
    Create an engine with connection pooling.

    TRADEOFF: Larger pool = more connections = more memory but better
    concurrency. Tenant engines get a smaller pool than the platform one
    because there is one per tenant.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        # Sessions are used from the worker thread pool
        connect_args["check_same_thread"] = False

    new_engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Verify connections before using (handles stale connections)
        echo=settings.DEBUG,  # Log SQL in debug mode
        connect_args=connect_args,
    )

    if url.startswith("postgresql"):
        @event.listens_for(new_engine, "connect")
        def set_utc(dbapi_connection, connection_record):
            """Keep timestamps consistent across all tenants."""
            cursor = dbapi_connection.cursor()
            cursor.execute("SET TIME ZONE 'UTC'")
            cursor.close()

    return new_engine


# Platform engine: the tenant directory lives here
engine = _create_engine(
    settings.DATABASE_URL,
    settings.DATABASE_POOL_SIZE,
    settings.DATABASE_MAX_OVERFLOW,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)

# Platform models (tenant directory)
Base = declarative_base()

# Models that live inside every tenant store
TenantBase = declarative_base()


@lru_cache(maxsize=None)
def get_tenant_engine(url: str) -> Engine:
    """
    Engine for one tenant store, created once per URL.

    An engine holds only the connection pool for its own URL, so sharing
    it across concurrent requests cannot leak one request's tenant into
    another's.
    """
    logger.info(f"Creating engine for tenant store {make_url(url).database}")
    return _create_engine(url, settings.TENANT_POOL_SIZE, settings.TENANT_MAX_OVERFLOW)


@lru_cache(maxsize=None)
def get_catalog_engine(url: str) -> Engine:
    """Engine for the server's maintenance database (PostgreSQL only)."""
    return _create_engine(url, pool_size=2, max_overflow=2)


def is_missing_store_error(exc: BaseException) -> bool:
    """
    True when an error means the target database does not exist.

    Drivers report SQLSTATE 3D000 as `pgcode` (psycopg2) or `sqlstate`
    (psycopg 3).
    """
    if isinstance(exc, StoreMissingError):
        return True
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == INVALID_CATALOG_NAME


def tenant_session(url: str) -> Session:
    """Open a session against a tenant store."""
    return Session(bind=get_tenant_engine(url), autoflush=False, expire_on_commit=False)


def init_db():
    """
    Create the platform tables.

    Dev/test convenience only: tenant stores are provisioned elsewhere.
    """
    logger.warning("init_db() called - use migrations in production!")
    Base.metadata.create_all(bind=engine)
