"""Async SQLite driver adapter over aiosqlite.

Statements run on aiosqlite's worker thread through the same helpers as
the blocking adapter, so both paths bind, time out and fail identically.
Readers are buffered while they are acquired.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from dbexec.db.backend import CommandBehavior, CommandType
from dbexec.db.reader import BufferedReader
from dbexec.db.sqlite_backend import (
    affected_rows,
    column_names,
    first_value,
    run_statement,
    sqlite_value,
    statement_for,
)
from dbexec.errors import DbExecError
from dbexec.params import DbParam, RawParams, to_bindings, to_raw_bindings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _buffer(behavior: CommandBehavior) -> Callable[[sqlite3.Cursor], tuple[list[str], list[Any]]]:
    def consume(cursor: sqlite3.Cursor) -> tuple[list[str], list[Any]]:
        columns = column_names(cursor)
        if behavior & CommandBehavior.SCHEMA_ONLY:
            rows = []
        elif behavior & CommandBehavior.SINGLE_ROW:
            rows = cursor.fetchmany(1)
        else:
            rows = cursor.fetchall()
        cursor.close()
        return columns, rows

    return consume


class AsyncSQLiteTransaction:
    """An explicit transaction on an AsyncSQLiteConnection."""

    def __init__(self, connection: AsyncSQLiteConnection) -> None:
        """Initialize for a connection on which ``BEGIN`` already ran."""
        self._connection = connection
        self.completed = False

    def __repr__(self) -> str:
        return f"<AsyncSQLiteTransaction {self._connection.database!r} completed={self.completed}>"

    @property
    def connection(self) -> AsyncSQLiteConnection:
        """The connection the transaction runs on."""
        return self._connection

    def _ensure_active(self) -> None:
        if self.completed:
            raise DbExecError("Transaction has already been committed or rolled back")

    async def commit(self) -> None:
        """Commit the transaction."""
        self._ensure_active()
        await self._connection.raw.execute("COMMIT")
        self.completed = True

    async def rollback(self) -> None:
        """Roll the transaction back. The transaction is finished even if this raises."""
        self._ensure_active()
        self.completed = True
        raw = self._connection.raw
        if raw.in_transaction:
            await raw.execute("ROLLBACK")

    async def close(self) -> None:
        """Roll back unless the transaction was already completed."""
        if not self.completed and self._connection.is_open:
            logger.debug("Closing unfinished transaction; rolling back")
            await self.rollback()


class AsyncSQLiteCommand:
    """A command on an AsyncSQLiteConnection."""

    def __init__(self, connection: AsyncSQLiteConnection) -> None:
        """Initialize an empty TEXT command."""
        self._connection = connection
        self.text = ""
        self.command_type = CommandType.TEXT
        self.timeout: float | None = None
        self.transaction: AsyncSQLiteTransaction | None = None
        self.bindings: dict[str, Any] = {}
        self.disposed = False

    @property
    def connection(self) -> AsyncSQLiteConnection:
        """The connection the command runs on."""
        return self._connection

    def set_params(self, params: Iterable[DbParam]) -> AsyncSQLiteCommand:
        """Replace the bindings with typed parameters."""
        self.bindings = to_bindings(params, sqlite_value)
        return self

    def set_params_raw(self, params: RawParams) -> AsyncSQLiteCommand:
        """Replace the bindings with untyped (name, value) pairs."""
        self.bindings = to_raw_bindings(params)
        return self

    async def _run(self, consume: Callable[[sqlite3.Cursor], T]) -> T:
        if self.disposed:
            raise DbExecError("Command has been disposed")
        if self.transaction is not None and self.transaction.connection is not self._connection:
            raise DbExecError("The command's transaction belongs to a different connection")
        statement = statement_for(self.text, self.command_type)
        conn = self._connection.raw
        abort = threading.Event()
        try:
            # Run on the aiosqlite worker thread against the raw sqlite3 connection
            return await conn._execute(  # type: ignore[no-untyped-call]
                run_statement, conn._conn, statement, self.bindings, self.timeout, consume, abort
            )
        except asyncio.CancelledError:
            # The worker thread keeps going unless the statement is interrupted
            abort.set()
            conn._conn.interrupt()
            logger.debug("Interrupted cancelled statement: %s", self.text)
            raise

    async def execute(self) -> int:
        """Execute and return the affected row count."""
        return await self._run(affected_rows)

    async def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row, or None."""
        return await self._run(first_value)

    async def execute_reader(self, behavior: CommandBehavior) -> BufferedReader:
        """Execute and return a reader over the fetched rows."""
        columns, rows = await self._run(_buffer(behavior))
        on_close = None
        if behavior & CommandBehavior.CLOSE_CONNECTION:
            on_close = self._connection.close_soon
        return BufferedReader(columns, rows, behavior, on_close)

    def dispose(self) -> None:
        """Drop the bindings and refuse further execution."""
        self.bindings = {}
        self.disposed = True


class AsyncSQLiteConnection:
    """An aiosqlite connection, opened on demand."""

    def __init__(self, database: str | Path = ":memory:") -> None:
        """Initialize for a database file path or ``:memory:``."""
        self.database = str(database)
        self._conn: aiosqlite.Connection | None = None
        self._closing: set[asyncio.Task[None]] = set()

    def __repr__(self) -> str:
        return f"<AsyncSQLiteConnection {self.database!r} open={self.is_open}>"

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        return self._conn is not None

    @property
    def raw(self) -> aiosqlite.Connection:
        """The underlying aiosqlite connection."""
        if self._conn is None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed database.")
        return self._conn

    async def open(self) -> None:
        """Open the connection with foreign keys enforced."""
        if self._conn is not None:
            return
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self.database, isolation_level=None)
        await conn.execute("PRAGMA foreign_keys=ON")
        self._conn = conn
        logger.debug("Opened SQLite database %s", self.database)

    def create_command(self) -> AsyncSQLiteCommand:
        """Create a command bound to this connection."""
        return AsyncSQLiteCommand(self)

    async def begin_transaction(self) -> AsyncSQLiteTransaction:
        """Begin a deferred transaction."""
        await self.raw.execute("BEGIN")
        return AsyncSQLiteTransaction(self)

    async def close(self) -> None:
        """Close the connection. In-memory databases are discarded."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    def close_soon(self) -> None:
        """Schedule close() from synchronous code, such as a reader's close."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        task = asyncio.get_running_loop().create_task(conn.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def wait_closed(self) -> None:
        """Wait for closes scheduled by close_soon() to finish."""
        if self._closing:
            await asyncio.gather(*self._closing)
