"""SQLite driver adapter over the standard library's sqlite3 module.

The connection runs in autocommit mode; transactions are explicit
``BEGIN``/``COMMIT``/``ROLLBACK`` statements. Named parameters may be
written ``@name``, ``:name`` or ``$name``.
"""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, TypeVar

from dbexec.db.backend import CommandBehavior, CommandType
from dbexec.db.reader import RowReader
from dbexec.errors import DbExecError, UnsupportedCommandTypeError
from dbexec.params import DbParam, DbType, RawParams, to_bindings, to_raw_bindings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# VM instructions between deadline checks
_PROGRESS_INTERVAL = 1000


def sqlite_value(param: DbParam) -> Any:
    """Convert a typed parameter to a value sqlite3 binds natively."""
    value = param.value
    if value is None:
        return None
    if param.db_type is DbType.BOOLEAN:
        return int(bool(value))
    if param.db_type is DbType.GUID and isinstance(value, uuid.UUID):
        return str(value)
    if param.db_type is DbType.DECIMAL and isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dt.date | dt.time):
        return value.isoformat()
    return value


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def statement_for(text: str, command_type: CommandType) -> str:
    """Return the SQL to run for a command's text and type."""
    if command_type is CommandType.TEXT:
        return text
    if command_type is CommandType.TABLE_DIRECT:
        return f"SELECT * FROM {_quote_identifier(text)}"
    raise UnsupportedCommandTypeError(f"SQLite does not support {command_type} commands")


@contextmanager
def deadline(
    conn: sqlite3.Connection,
    timeout: float | None,
    abort: threading.Event | None = None,
) -> Iterator[None]:
    """Interrupt statements on ``conn`` that run past ``timeout`` seconds.

    When ``abort`` is given, setting it interrupts the statement as well.
    """
    expires = time.monotonic() + timeout if timeout and timeout > 0 else None
    if expires is None and abort is None:
        yield
        return

    def _expired() -> int:
        if abort is not None and abort.is_set():
            return 1
        return int(expires is not None and time.monotonic() > expires)

    conn.set_progress_handler(_expired, _PROGRESS_INTERVAL)
    try:
        yield
    finally:
        conn.set_progress_handler(None, 0)


def run_statement(
    conn: sqlite3.Connection,
    statement: str,
    bindings: dict[str, Any],
    timeout: float | None,
    consume: Callable[[sqlite3.Cursor], T],
    abort: threading.Event | None = None,
) -> T:
    """Execute one statement under the deadline and consume its cursor.

    A statement whose ``abort`` event is already set when it reaches the
    connection is not started.
    """
    if abort is not None and abort.is_set():
        raise sqlite3.OperationalError("interrupted")
    with deadline(conn, timeout, abort):
        cursor = conn.execute(statement, bindings)
        return consume(cursor)


def affected_rows(cursor: sqlite3.Cursor) -> int:
    """Return the row count of a finished statement and close its cursor."""
    count = cursor.rowcount
    cursor.close()
    return count if count is not None else -1


def first_value(cursor: sqlite3.Cursor) -> Any:
    """Return the first column of the first row and close the cursor."""
    row = cursor.fetchone()
    cursor.close()
    return row[0] if row is not None else None


def column_names(cursor: sqlite3.Cursor) -> list[str]:
    """Return the cursor's column names (empty for statements without results)."""
    return [col[0] for col in cursor.description or ()]


class SQLiteTransaction:
    """An explicit transaction on a SQLiteConnection."""

    def __init__(self, connection: SQLiteConnection) -> None:
        """Initialize for a connection on which ``BEGIN`` already ran."""
        self._connection = connection
        self.completed = False

    def __repr__(self) -> str:
        return f"<SQLiteTransaction {self._connection.database!r} completed={self.completed}>"

    @property
    def connection(self) -> SQLiteConnection:
        """The connection the transaction runs on."""
        return self._connection

    def _ensure_active(self) -> None:
        if self.completed:
            raise DbExecError("Transaction has already been committed or rolled back")

    def commit(self) -> None:
        """Commit the transaction."""
        self._ensure_active()
        self._connection.raw.execute("COMMIT")
        self.completed = True

    def rollback(self) -> None:
        """Roll the transaction back. The transaction is finished even if this raises."""
        self._ensure_active()
        self.completed = True
        raw = self._connection.raw
        # SQLite may already have rolled back on its own (e.g. SQLITE_FULL)
        if raw.in_transaction:
            raw.execute("ROLLBACK")

    def close(self) -> None:
        """Roll back unless the transaction was already completed."""
        if not self.completed and self._connection.is_open:
            logger.debug("Closing unfinished transaction; rolling back")
            self.rollback()

    def __enter__(self) -> SQLiteTransaction:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SQLiteCommand:
    """A command on a SQLiteConnection."""

    def __init__(self, connection: SQLiteConnection) -> None:
        """Initialize an empty TEXT command."""
        self._connection = connection
        self.text = ""
        self.command_type = CommandType.TEXT
        self.timeout: float | None = None
        self.transaction: SQLiteTransaction | None = None
        self.bindings: dict[str, Any] = {}
        self.disposed = False

    @property
    def connection(self) -> SQLiteConnection:
        """The connection the command runs on."""
        return self._connection

    def set_params(self, params: Iterable[DbParam]) -> SQLiteCommand:
        """Replace the bindings with typed parameters."""
        self.bindings = to_bindings(params, sqlite_value)
        return self

    def set_params_raw(self, params: RawParams) -> SQLiteCommand:
        """Replace the bindings with untyped (name, value) pairs."""
        self.bindings = to_raw_bindings(params)
        return self

    def _run(self, consume: Callable[[sqlite3.Cursor], T]) -> T:
        if self.disposed:
            raise DbExecError("Command has been disposed")
        if self.transaction is not None and self.transaction.connection is not self._connection:
            raise DbExecError("The command's transaction belongs to a different connection")
        statement = statement_for(self.text, self.command_type)
        return run_statement(self._connection.raw, statement, self.bindings, self.timeout, consume)

    def execute(self) -> int:
        """Execute and return the affected row count."""
        return self._run(affected_rows)

    def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row, or None."""
        return self._run(first_value)

    def execute_reader(self, behavior: CommandBehavior) -> RowReader:
        """Execute and return a reader streaming rows from the cursor."""
        cursor = self._run(lambda c: c)

        def _close() -> None:
            cursor.close()
            if behavior & CommandBehavior.CLOSE_CONNECTION:
                self._connection.close()

        return RowReader(column_names(cursor), cursor.fetchone, behavior, _close)

    def dispose(self) -> None:
        """Drop the bindings and refuse further execution."""
        self.bindings = {}
        self.disposed = True


class SQLiteConnection:
    """A blocking SQLite connection, opened on demand."""

    def __init__(self, database: str | Path = ":memory:", **connect_kwargs: Any) -> None:
        """Initialize for a database file path or ``:memory:``."""
        self.database = str(database)
        self._connect_kwargs = connect_kwargs
        self._conn: sqlite3.Connection | None = None

    def __repr__(self) -> str:
        return f"<SQLiteConnection {self.database!r} open={self.is_open}>"

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        return self._conn is not None

    @property
    def raw(self) -> sqlite3.Connection:
        """The underlying sqlite3 connection."""
        if self._conn is None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed database.")
        return self._conn

    def open(self) -> None:
        """Open the connection with foreign keys enforced."""
        if self._conn is not None:
            return
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.database, isolation_level=None, **self._connect_kwargs)
        conn.execute("PRAGMA foreign_keys=ON")
        self._conn = conn
        logger.debug("Opened SQLite database %s", self.database)

    def create_command(self) -> SQLiteCommand:
        """Create a command bound to this connection."""
        return SQLiteCommand(self)

    def begin_transaction(self) -> SQLiteTransaction:
        """Begin a deferred transaction."""
        self.raw.execute("BEGIN")
        return SQLiteTransaction(self)

    def close(self) -> None:
        """Close the connection. In-memory databases are discarded."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
