"""Tests for the connection factories."""

from dbexec.db.aiosqlite_backend import AsyncSQLiteConnection
from dbexec.db.connection import create_async_connection, create_connection
from dbexec.db.postgres_backend import PostgresConnection
from dbexec.db.sqlite_backend import SQLiteConnection


def test_create_connection_is_unopened():
    conn = create_connection(":memory:")
    assert isinstance(conn, SQLiteConnection)
    assert conn.is_open is False


def test_create_connection_defaults_to_env_path(monkeypatch, tmp_path):
    monkeypatch.setenv("DBEXEC_DB_PATH", str(tmp_path / "env.db"))
    assert create_connection().database == str(tmp_path / "env.db")


def test_create_async_connection_memory():
    conn = create_async_connection(":memory:")
    assert isinstance(conn, AsyncSQLiteConnection)
    assert conn.database == ":memory:"


def test_create_async_connection_postgres_url():
    conn = create_async_connection("postgresql://user@localhost/db")
    assert isinstance(conn, PostgresConnection)
    assert conn.is_open is False


def test_create_async_connection_uses_database_url(monkeypatch):
    monkeypatch.setenv("DBEXEC_DATABASE_URL", "postgres://localhost/app")
    assert isinstance(create_async_connection(), PostgresConnection)


def test_create_async_connection_falls_back_to_db_path(monkeypatch, tmp_path):
    monkeypatch.setenv("DBEXEC_DB_PATH", str(tmp_path / "kb.db"))
    conn = create_async_connection()
    assert isinstance(conn, AsyncSQLiteConnection)
    assert conn.database == str(tmp_path / "kb.db")
