"""PostgreSQL driver adapter over asyncpg.

Named parameters (``@name`` or ``:name``) are translated to asyncpg's
positional ``$N`` placeholders at execute time. ``::type`` casts are
left alone. Readers are buffered while they are acquired.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from dbexec.db.backend import CommandBehavior, CommandType
from dbexec.db.reader import BufferedReader
from dbexec.errors import DbExecError
from dbexec.params import DbParam, RawParams, to_bindings, to_raw_bindings

if TYPE_CHECKING:
    import asyncpg
    from asyncpg.transaction import Transaction as PgTransaction

logger = logging.getLogger(__name__)

# Pre-compiled regex for named placeholders; the lookbehind skips ``::`` casts
_NAMED_PARAM_RE = re.compile(r"(?<![:\w])[@:]([A-Za-z_]\w*)")


def _translate_placeholders(sql: str) -> tuple[str, list[str]]:
    """Convert named placeholders to ``$1, $2, ...`` for asyncpg.

    Returns the translated SQL and the parameter names in positional
    order. A name used more than once maps to the same position.
    """
    names: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in names:
            names.append(name)
        return f"${names.index(name) + 1}"

    return _NAMED_PARAM_RE.sub(_replace, sql), names


def _parse_rowcount(status: str | None) -> int:
    """Parse affected row count from an asyncpg status string.

    Examples: "INSERT 0 1" → 1, "UPDATE 3" → 3, "CREATE TABLE" → -1.
    """
    if not status:
        return -1
    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[-1])
        except ValueError:
            pass
    return -1


def _quote_identifier(name: str) -> str:
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


class PostgresTransaction:
    """A transaction on a PostgresConnection."""

    def __init__(self, connection: PostgresConnection, transaction: PgTransaction) -> None:
        """Initialize with a started asyncpg transaction."""
        self._connection = connection
        self._transaction = transaction
        self.completed = False

    def __repr__(self) -> str:
        return f"<PostgresTransaction completed={self.completed}>"

    @property
    def connection(self) -> PostgresConnection:
        """The connection the transaction runs on."""
        return self._connection

    def _ensure_active(self) -> None:
        if self.completed:
            raise DbExecError("Transaction has already been committed or rolled back")

    async def commit(self) -> None:
        """Commit the transaction."""
        self._ensure_active()
        await self._transaction.commit()
        self.completed = True

    async def rollback(self) -> None:
        """Roll the transaction back. The transaction is finished even if this raises."""
        self._ensure_active()
        self.completed = True
        await self._transaction.rollback()

    async def close(self) -> None:
        """Roll back unless the transaction was already completed."""
        if not self.completed and self._connection.is_open:
            logger.debug("Closing unfinished transaction; rolling back")
            await self.rollback()


class PostgresCommand:
    """A command on a PostgresConnection."""

    def __init__(self, connection: PostgresConnection) -> None:
        """Initialize an empty TEXT command."""
        self._connection = connection
        self.text = ""
        self.command_type = CommandType.TEXT
        self.timeout: float | None = None
        self.transaction: PostgresTransaction | None = None
        self.bindings: dict[str, Any] = {}
        self.disposed = False

    @property
    def connection(self) -> PostgresConnection:
        """The connection the command runs on."""
        return self._connection

    def set_params(self, params: Iterable[DbParam]) -> PostgresCommand:
        """Replace the bindings with typed parameters. asyncpg binds Python values natively."""
        self.bindings = to_bindings(params)
        return self

    def set_params_raw(self, params: RawParams) -> PostgresCommand:
        """Replace the bindings with untyped (name, value) pairs."""
        self.bindings = to_raw_bindings(params)
        return self

    def statement(self) -> tuple[str, list[Any]]:
        """Return the SQL to run and its positional arguments."""
        if self.disposed:
            raise DbExecError("Command has been disposed")
        if self.transaction is not None and self.transaction.connection is not self._connection:
            raise DbExecError("The command's transaction belongs to a different connection")
        if self.command_type is CommandType.TABLE_DIRECT:
            return f"SELECT * FROM {_quote_identifier(self.text)}", []
        if self.command_type is CommandType.STORED_PROCEDURE:
            placeholders = ", ".join(f"${i}" for i in range(1, len(self.bindings) + 1))
            return f"CALL {self.text}({placeholders})", list(self.bindings.values())
        sql, names = _translate_placeholders(self.text)
        missing = [name for name in names if name not in self.bindings]
        if missing:
            raise DbExecError(f"No value supplied for parameter @{missing[0]}")
        return sql, [self.bindings[name] for name in names]

    async def execute(self) -> int:
        """Execute and return the affected row count."""
        sql, args = self.statement()
        status = await self._connection.raw.execute(sql, *args, timeout=self.timeout)
        return _parse_rowcount(status)

    async def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row, or None."""
        sql, args = self.statement()
        return await self._connection.raw.fetchval(sql, *args, timeout=self.timeout)

    async def execute_reader(self, behavior: CommandBehavior) -> BufferedReader:
        """Execute and return a reader over the fetched records."""
        sql, args = self.statement()
        prepared = await self._connection.raw.prepare(sql, timeout=self.timeout)
        columns = [attr.name for attr in prepared.get_attributes()]
        if behavior & CommandBehavior.SCHEMA_ONLY:
            records = []
        elif behavior & CommandBehavior.SINGLE_ROW:
            row = await prepared.fetchrow(*args, timeout=self.timeout)
            records = [] if row is None else [row]
        else:
            records = await prepared.fetch(*args, timeout=self.timeout)
        on_close = None
        if behavior & CommandBehavior.CLOSE_CONNECTION:
            on_close = self._connection.terminate
        return BufferedReader(columns, [tuple(r.values()) for r in records], behavior, on_close)

    def dispose(self) -> None:
        """Drop the bindings and refuse further execution."""
        self.bindings = {}
        self.disposed = True


class PostgresConnection:
    """A single asyncpg connection, opened on demand."""

    def __init__(self, url: str, **connect_kwargs: Any) -> None:
        """Initialize from a ``postgresql://`` connection URL."""
        self.url = url
        self._connect_kwargs = connect_kwargs
        self._conn: asyncpg.Connection | None = None

    def __repr__(self) -> str:
        return f"<PostgresConnection open={self.is_open}>"

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        return self._conn is not None and not self._conn.is_closed()

    @property
    def raw(self) -> asyncpg.Connection:
        """The underlying asyncpg connection."""
        if self._conn is None:
            raise DbExecError("Connection is not open")
        return self._conn

    async def open(self) -> None:
        """Connect to the server."""
        if self.is_open:
            return
        import asyncpg as _asyncpg

        self._conn = await _asyncpg.connect(self.url, **self._connect_kwargs)
        logger.debug("Opened PostgreSQL connection")

    def create_command(self) -> PostgresCommand:
        """Create a command bound to this connection."""
        return PostgresCommand(self)

    async def begin_transaction(self) -> PostgresTransaction:
        """Start a transaction."""
        transaction = self.raw.transaction()
        await transaction.start()
        return PostgresTransaction(self, transaction)

    async def close(self) -> None:
        """Close the connection gracefully."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    def terminate(self) -> None:
        """Close the connection immediately, from synchronous code."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.terminate()
