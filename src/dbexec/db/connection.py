"""Connection factories."""

import logging
from pathlib import Path

from dbexec.config import get_database_url, get_db_path
from dbexec.db.aiosqlite_backend import AsyncSQLiteConnection
from dbexec.db.backend import AsyncConnection
from dbexec.db.sqlite_backend import SQLiteConnection

logger = logging.getLogger(__name__)

_POSTGRES_SCHEMES = ("postgres://", "postgresql://")


def create_connection(db_path: Path | str | None = None) -> SQLiteConnection:
    """Create an unopened blocking SQLite connection.

    Defaults to DBEXEC_DB_PATH. For in-memory databases, pass ":memory:".
    """
    return SQLiteConnection(db_path or get_db_path())


def create_async_connection(target: Path | str | None = None) -> AsyncConnection:
    """Create an unopened async connection.

    ``target`` is a SQLite path, ``:memory:`` or a PostgreSQL URL. When
    omitted, DBEXEC_DATABASE_URL is used if set, else DBEXEC_DB_PATH.
    """
    if target is None:
        target = get_database_url() or get_db_path()
    target = str(target)
    if target.startswith(_POSTGRES_SCHEMES):
        from dbexec.db.postgres_backend import PostgresConnection

        logger.debug("Using PostgreSQL backend")
        return PostgresConnection(target)
    return AsyncSQLiteConnection(target)
