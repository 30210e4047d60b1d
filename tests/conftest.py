"""Shared test fixtures."""

import pytest
import pytest_asyncio

from dbexec.db.aiosqlite_backend import AsyncSQLiteConnection
from dbexec.db.sqlite_backend import SQLiteConnection
from tests.fakes import FakeAsyncConnection, FakeConnection

SCHEMA = "CREATE TABLE t (id INTEGER PRIMARY KEY, x INTEGER NOT NULL UNIQUE, label TEXT)"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep DBEXEC_* settings from the outer environment out of tests."""
    for name in (
        "DBEXEC_DB_PATH",
        "DBEXEC_DATABASE_URL",
        "DBEXEC_COMMAND_TIMEOUT",
        "DBEXEC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_conn():
    """Blocking fake connection with one integer column."""
    return FakeConnection()


@pytest.fixture
def fake_async_conn():
    """Async fake connection with one integer column."""
    return FakeAsyncConnection()


@pytest.fixture
def sqlite_conn():
    """Open in-memory SQLite connection with table t."""
    conn = SQLiteConnection(":memory:")
    conn.open()
    conn.raw.execute(SCHEMA)
    yield conn
    conn.close()


@pytest_asyncio.fixture
async def async_sqlite_conn():
    """Open in-memory aiosqlite connection with table t."""
    conn = AsyncSQLiteConnection(":memory:")
    await conn.open()
    await conn.raw.execute(SCHEMA)
    yield conn
    await conn.close()
