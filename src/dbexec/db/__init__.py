"""Driver capability protocols and adapters."""

from dbexec.db.aiosqlite_backend import AsyncSQLiteConnection
from dbexec.db.backend import (
    AsyncCommand,
    AsyncConnection,
    AsyncTransaction,
    Command,
    CommandBehavior,
    CommandType,
    Connection,
    Reader,
    Transaction,
)
from dbexec.db.connection import create_async_connection, create_connection
from dbexec.db.reader import BufferedReader, RowReader
from dbexec.db.sqlite_backend import SQLiteConnection

__all__ = [
    "AsyncCommand",
    "AsyncConnection",
    "AsyncSQLiteConnection",
    "AsyncTransaction",
    "BufferedReader",
    "Command",
    "CommandBehavior",
    "CommandType",
    "Connection",
    "Reader",
    "RowReader",
    "SQLiteConnection",
    "Transaction",
    "create_async_connection",
    "create_connection",
]
