"""Exception types raised by the execution layer itself.

Driver failures (connection, binding, constraint, timeout) are never
wrapped; they reach the caller as the driver raised them.
"""


class DbExecError(Exception):
    """Base class for errors raised by dbexec rather than the driver."""


class CommandConsumedError(DbExecError):
    """A command unit was configured or executed after it was consumed."""

    def __init__(self, text: str) -> None:
        """Initialize with the command text of the spent unit."""
        super().__init__(f"Command unit has already been executed: {text!r}")
        self.text = text


class UnsupportedCommandTypeError(DbExecError):
    """The driver cannot run commands of the requested type."""


class OperationCancelledError(DbExecError):
    """Raised at a suspension point when the unit's cancellation token fires.

    This is an ordinary exception rather than a CancelledError so that task
    groups and gather() report it instead of treating the task as cancelled.
    """
