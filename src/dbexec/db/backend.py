"""Driver capability protocols — the only surface the engine touches.

A driver adapter wraps one concrete database API (sqlite3, aiosqlite,
asyncpg, ...) and exposes a connection, command, reader and transaction
shaped like these protocols. The execution engine and batch runner are
written purely against them, so tests can swap in in-memory fakes.
"""

from __future__ import annotations

from enum import IntFlag, StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable

    from dbexec.params import DbParam


class CommandType(StrEnum):
    """How the driver interprets a command's text."""

    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"
    TABLE_DIRECT = "table_direct"


class CommandBehavior(IntFlag):
    """Hints describing how a reader will be consumed."""

    DEFAULT = 0
    SINGLE_RESULT = 1
    SCHEMA_ONLY = 2
    KEY_INFO = 4
    SINGLE_ROW = 8
    SEQUENTIAL_ACCESS = 16
    CLOSE_CONNECTION = 32


@runtime_checkable
class Reader(Protocol):
    """Forward-only cursor over a result set, advanced synchronously."""

    @property
    def field_count(self) -> int:
        """Number of columns in the result set."""
        ...

    def read(self) -> bool:
        """Advance to the next row. Returns False once the rows are exhausted."""
        ...

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value of the current row by name or ordinal."""
        ...

    def keys(self) -> list[str]:
        """Return column names."""
        ...

    def get_ordinal(self, name: str) -> int:
        """Return the ordinal of a named column."""
        ...

    def is_null(self, key: str | int) -> bool:
        """Whether a column of the current row is NULL."""
        ...

    def close(self) -> None:
        """Release the underlying cursor."""
        ...


@runtime_checkable
class Transaction(Protocol):
    """A transaction begun on an open connection."""

    @property
    def connection(self) -> Connection:
        """The connection the transaction runs on."""
        ...

    def commit(self) -> None:
        """Commit the transaction."""
        ...

    def rollback(self) -> None:
        """Roll the transaction back."""
        ...

    def close(self) -> None:
        """Release the transaction, rolling back if it was never completed."""
        ...

    def __enter__(self) -> Transaction: ...

    def __exit__(self, *exc_info: object) -> None: ...


@runtime_checkable
class Command(Protocol):
    """A driver command object executed with blocking calls."""

    text: str
    command_type: CommandType
    timeout: float | None
    transaction: Transaction | None

    @property
    def connection(self) -> Connection:
        """The connection the command runs on."""
        ...

    def set_params(self, params: Iterable[DbParam]) -> Command:
        """Replace the command's bindings with typed parameters."""
        ...

    def set_params_raw(self, params: Any) -> Command:
        """Replace the command's bindings with untyped (name, value) pairs."""
        ...

    def execute(self) -> int:
        """Execute and return the affected row count (-1 if unknown)."""
        ...

    def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row, or None."""
        ...

    def execute_reader(self, behavior: CommandBehavior) -> Reader:
        """Execute and return a forward-only reader."""
        ...

    def dispose(self) -> None:
        """Release driver resources held by the command."""
        ...


@runtime_checkable
class Connection(Protocol):
    """A blocking database connection."""

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        ...

    def open(self) -> None:
        """Open the connection."""
        ...

    def create_command(self) -> Command:
        """Create a command bound to this connection. Performs no I/O."""
        ...

    def begin_transaction(self) -> Transaction:
        """Begin a transaction on the open connection."""
        ...

    def close(self) -> None:
        """Close the connection."""
        ...


@runtime_checkable
class AsyncTransaction(Protocol):
    """A transaction whose completion is awaited."""

    @property
    def connection(self) -> AsyncConnection:
        """The connection the transaction runs on."""
        ...

    async def commit(self) -> None:
        """Commit the transaction."""
        ...

    async def rollback(self) -> None:
        """Roll the transaction back."""
        ...

    async def close(self) -> None:
        """Release the transaction, rolling back if it was never completed."""
        ...


@runtime_checkable
class AsyncCommand(Protocol):
    """A driver command object executed with awaitable calls.

    Readers are acquired asynchronously but advanced synchronously.
    """

    text: str
    command_type: CommandType
    timeout: float | None
    transaction: AsyncTransaction | None

    @property
    def connection(self) -> AsyncConnection:
        """The connection the command runs on."""
        ...

    def set_params(self, params: Iterable[DbParam]) -> AsyncCommand:
        """Replace the command's bindings with typed parameters."""
        ...

    def set_params_raw(self, params: Any) -> AsyncCommand:
        """Replace the command's bindings with untyped (name, value) pairs."""
        ...

    async def execute(self) -> int:
        """Execute and return the affected row count (-1 if unknown)."""
        ...

    async def execute_scalar(self) -> Any:
        """Execute and return the first column of the first row, or None."""
        ...

    async def execute_reader(self, behavior: CommandBehavior) -> Reader:
        """Execute and return a forward-only reader."""
        ...

    def dispose(self) -> None:
        """Release driver resources held by the command."""
        ...


@runtime_checkable
class AsyncConnection(Protocol):
    """A database connection opened and used with awaitable calls."""

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        ...

    async def open(self) -> None:
        """Open the connection."""
        ...

    def create_command(self) -> AsyncCommand:
        """Create a command bound to this connection. Performs no I/O."""
        ...

    async def begin_transaction(self) -> AsyncTransaction:
        """Begin a transaction on the open connection."""
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...
