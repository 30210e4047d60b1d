"""Resource-safe command execution over database driver connections."""

from dbexec.cancellation import CancellationToken
from dbexec.db.backend import CommandBehavior, CommandType
from dbexec.errors import (
    CommandConsumedError,
    DbExecError,
    OperationCancelledError,
    UnsupportedCommandTypeError,
)
from dbexec.params import DbParam, DbType, SqlType, SqlValue
from dbexec.unit import CommandUnit, new_command, new_command_for_transaction

__all__ = [
    "CancellationToken",
    "CommandBehavior",
    "CommandConsumedError",
    "CommandType",
    "CommandUnit",
    "DbExecError",
    "DbParam",
    "DbType",
    "OperationCancelledError",
    "SqlType",
    "SqlValue",
    "UnsupportedCommandTypeError",
    "new_command",
    "new_command_for_transaction",
]
