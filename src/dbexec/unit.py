"""Single-use command builder."""

from __future__ import annotations

from typing import Generic, Self, TypeVar

from dbexec.cancellation import CancellationToken
from dbexec.config import get_command_timeout
from dbexec.db.backend import (
    AsyncCommand,
    AsyncConnection,
    AsyncTransaction,
    Command,
    CommandBehavior,
    CommandType,
    Connection,
    Transaction,
)
from dbexec.errors import CommandConsumedError
from dbexec.params import RawDbParams, RawParams, create_params

C = TypeVar("C", Command, AsyncCommand)


class CommandUnit(Generic[C]):
    """One driver command plus its execution configuration.

    A unit is consumed by exactly one execution primitive, which disposes
    the command. The ``set_*`` methods mutate the unit in place and
    return it for chaining; nothing here performs I/O.
    """

    def __init__(self, command: C) -> None:
        """Initialize around a driver command whose text is already set."""
        self.command = command
        self.cancellation_token = CancellationToken.none()
        self.command_behavior = CommandBehavior.SEQUENTIAL_ACCESS
        self.consumed = False

    def __repr__(self) -> str:
        state = "consumed" if self.consumed else "pending"
        return f"<CommandUnit {self.command.text!r} ({state})>"

    @property
    def text(self) -> str:
        """The command text."""
        return self.command.text

    def _ensure_pending(self) -> None:
        if self.consumed:
            raise CommandConsumedError(self.command.text)

    def set_params(self, params: RawDbParams) -> Self:
        """Replace the bindings with validated, typed parameters."""
        self._ensure_pending()
        self.command.set_params(create_params(params))
        return self

    def set_params_raw(self, params: RawParams) -> Self:
        """Replace the bindings with untyped (name, value) pairs."""
        self._ensure_pending()
        self.command.set_params_raw(params)
        return self

    def set_timeout(self, timeout: float | None) -> Self:
        """Set the command timeout in seconds (None for the driver default)."""
        self._ensure_pending()
        self.command.timeout = timeout
        return self

    def set_command_type(self, command_type: CommandType) -> Self:
        """Set how the driver interprets the command text."""
        self._ensure_pending()
        self.command.command_type = command_type
        return self

    def set_command_behavior(self, behavior: CommandBehavior) -> Self:
        """Set the reader behavior used by read, query and query_single."""
        self._ensure_pending()
        self.command_behavior = behavior
        return self

    def set_cancellation_token(self, token: CancellationToken) -> Self:
        """Set the token observed at every async suspension point."""
        self._ensure_pending()
        self.cancellation_token = token
        return self

    def set_transaction(self, transaction: Transaction | AsyncTransaction) -> Self:
        """Enlist the command in a transaction."""
        self._ensure_pending()
        self.command.transaction = transaction  # type: ignore[assignment]
        return self

    def consume(self) -> C:
        """Mark the unit spent and hand its command to an execution primitive."""
        self._ensure_pending()
        self.consumed = True
        return self.command


def new_command(text: str, conn: Connection | AsyncConnection) -> CommandUnit:
    """Create a command unit on ``conn`` with the given command text."""
    command = conn.create_command()
    command.text = text
    timeout = get_command_timeout()
    if timeout is not None:
        command.timeout = timeout
    return CommandUnit(command)


def new_command_for_transaction(
    text: str, transaction: Transaction | AsyncTransaction
) -> CommandUnit:
    """Create a command unit on the transaction's connection, enlisted in it."""
    return new_command(text, transaction.connection).set_transaction(transaction)
