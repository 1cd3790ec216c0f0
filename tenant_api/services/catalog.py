"""
Store Catalog

Answers "does this tenant database exist?" before anything connects to it.

PostgreSQL is asked through the pg_database catalog of the maintenance
database. SQLite stores are files, and connecting to a missing file would
silently create it, so the file is checked instead.

Any error while asking is logged and reported as "does not exist": a store
whose existence cannot be confirmed is never routed to.
"""
import os
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from tenant_api.config import Settings
from tenant_api.database import get_catalog_engine
import logging

logger = logging.getLogger(__name__)


class StoreCatalog:
    def __init__(self, settings: Settings):
        self.settings = settings

    def exists(self, db_name: str) -> bool:
        url = make_url(self.settings.tenant_database_url(db_name))

        try:
            if url.get_backend_name() == "sqlite":
                return self._file_exists(url.database)
            return self._server_has_database(db_name)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                f"Could not check whether database {db_name} exists: {e}",
                extra={"db_name": db_name}
            )
            return False

    def _server_has_database(self, db_name: str) -> bool:
        catalog = get_catalog_engine(self.settings.CATALOG_DATABASE_URL)
        with catalog.connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name}
            ).first()
        return row is not None

    @staticmethod
    def _file_exists(path) -> bool:
        if not path or path == ":memory:":
            return False
        return os.path.isfile(path)
