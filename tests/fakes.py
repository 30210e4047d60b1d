"""In-memory fake drivers that record every call the engine makes."""

import asyncio
from collections.abc import Callable
from typing import Any

from dbexec.db.backend import CommandBehavior, CommandType
from dbexec.db.reader import BufferedReader
from dbexec.params import to_bindings, to_raw_bindings


class DriverError(Exception):
    """Stand-in for a driver failure (constraint violation, bad binding, ...)."""


class FakeReader(BufferedReader):
    """Buffered reader that counts read() calls."""

    def __init__(self, columns, rows, behavior):
        super().__init__(columns, rows, behavior)
        self.read_calls = 0

    def read(self) -> bool:
        self.read_calls += 1
        return super().read()


class FakeTransaction:
    def __init__(self, connection):
        self._connection = connection
        self.committed = False
        self.rolled_back = False
        self.closed = False

    @property
    def connection(self):
        return self._connection

    def commit(self) -> None:
        self._connection.log.append("commit")
        if self._connection.commit_error is not None:
            raise self._connection.commit_error
        self.committed = True

    def rollback(self) -> None:
        self._connection.log.append("rollback")
        if self._connection.rollback_error is not None:
            raise self._connection.rollback_error
        self.rolled_back = True

    def close(self) -> None:
        self._connection.log.append("close_transaction")
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FakeCommand:
    def __init__(self, connection):
        self._connection = connection
        self.text = ""
        self.command_type = CommandType.TEXT
        self.timeout = None
        self.transaction = None
        self.bindings: dict[str, Any] = {}
        self.disposed = False
        self.behaviors: list[CommandBehavior] = []

    @property
    def connection(self):
        return self._connection

    def set_params(self, params):
        self.bindings = to_bindings(params)
        return self

    def set_params_raw(self, params):
        self.bindings = to_raw_bindings(params)
        return self

    def execute(self) -> int:
        self._connection.run(self)
        return 1

    def execute_scalar(self) -> Any:
        self._connection.run(self)
        return self._connection.scalar_value

    def execute_reader(self, behavior):
        self.behaviors.append(behavior)
        self._connection.run(self)
        return self._connection.new_reader(behavior)

    def dispose(self) -> None:
        self._connection.log.append("dispose")
        self.disposed = True


class FakeConnection:
    """Blocking fake connection.

    ``fail_at`` makes the execution with that zero-based index raise
    ``error``; ``on_execute`` is called with each execution's index.
    """

    command_class: type = FakeCommand
    transaction_class: type = FakeTransaction

    def __init__(
        self,
        *,
        columns=("x",),
        rows=(),
        scalar_value=None,
        fail_at: int | None = None,
        error: BaseException | None = None,
        open_error: BaseException | None = None,
        commit_error: BaseException | None = None,
        rollback_error: BaseException | None = None,
        on_execute: Callable[[int], None] | None = None,
    ):
        self.is_open = False
        self.open_calls = 0
        self.log: list[str] = []
        self.executions: list[tuple[str, dict[str, Any]]] = []
        self.commands: list[FakeCommand] = []
        self.transactions: list[FakeTransaction] = []
        self.readers: list[FakeReader] = []
        self.columns = list(columns)
        self.rows = [tuple(row) for row in rows]
        self.scalar_value = scalar_value
        self.fail_at = fail_at
        self.error = error or DriverError("driver failure")
        self.open_error = open_error
        self.commit_error = commit_error
        self.rollback_error = rollback_error
        self.on_execute = on_execute

    def open(self) -> None:
        self.open_calls += 1
        self.log.append("open")
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    def create_command(self):
        command = self.command_class(self)
        self.commands.append(command)
        return command

    def begin_transaction(self):
        self.log.append("begin")
        transaction = self.transaction_class(self)
        self.transactions.append(transaction)
        return transaction

    def close(self) -> None:
        self.is_open = False

    def run(self, command) -> None:
        index = len(self.executions)
        self.executions.append((command.text, dict(command.bindings)))
        self.log.append("execute")
        if self.on_execute is not None:
            self.on_execute(index)
        if self.fail_at == index:
            raise self.error

    def new_reader(self, behavior) -> FakeReader:
        reader = FakeReader(self.columns, self.rows, behavior)
        self.readers.append(reader)
        return reader


class FakeAsyncTransaction(FakeTransaction):
    async def commit(self) -> None:
        FakeTransaction.commit(self)

    async def rollback(self) -> None:
        FakeTransaction.rollback(self)

    async def close(self) -> None:
        FakeTransaction.close(self)


class FakeAsyncCommand(FakeCommand):
    """Async fake command. Executions wait on the connection's gate, if any."""

    async def execute(self) -> int:
        await self._connection.wait_gate()
        return FakeCommand.execute(self)

    async def execute_scalar(self) -> Any:
        await self._connection.wait_gate()
        return FakeCommand.execute_scalar(self)

    async def execute_reader(self, behavior):
        await self._connection.wait_gate()
        return FakeCommand.execute_reader(self, behavior)


class FakeAsyncConnection(FakeConnection):
    """Async fake connection.

    When ``gate`` is set, every execution suspends until the gate opens,
    giving tests a window to cancel.
    """

    command_class = FakeAsyncCommand
    transaction_class = FakeAsyncTransaction

    def __init__(self, *, gate: asyncio.Event | None = None, **kwargs):
        super().__init__(**kwargs)
        self.gate = gate
        self.cancelled_executions = 0

    async def wait_gate(self) -> None:
        if self.gate is None:
            await asyncio.sleep(0)
            return
        try:
            await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled_executions += 1
            raise

    async def open(self) -> None:
        await asyncio.sleep(0)
        FakeConnection.open(self)

    async def begin_transaction(self):
        return FakeConnection.begin_transaction(self)

    async def close(self) -> None:
        FakeConnection.close(self)
