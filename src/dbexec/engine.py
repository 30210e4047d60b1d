"""Step plans shared by the blocking and the async execution paths.

Each primitive is written once, as a generator that yields the steps it
needs (open the connection, execute, fetch a scalar, acquire a reader)
and receives each step's result back. ``run_sync`` performs the steps
with blocking calls; ``run_async`` awaits them through the unit's
cancellation token. Binding, conversion and row mapping happen inside
the plan, synchronously, in both modes.

The command is disposed only after the plan completes. A failing step
leaves disposal to the driver's own cleanup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator, Iterable
from enum import StrEnum
from typing import Any, TypeVar

from dbexec.cancellation import CancellationToken
from dbexec.db.backend import (
    AsyncCommand,
    AsyncConnection,
    AsyncTransaction,
    Command,
    CommandBehavior,
    Connection,
    Reader,
    Transaction,
)
from dbexec.params import RawDbParams, RawParams, create_params
from dbexec.unit import CommandUnit

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=Reader)


class Step(StrEnum):
    """A suspension point of the async path (a blocking call on the sync path)."""

    OPEN = "open"
    EXECUTE = "execute"
    SCALAR = "scalar"
    READER = "reader"


Plan = Generator[Step, Any, T]


# -- Plans --


def execute_plan(command: Command | AsyncCommand) -> Plan[None]:
    yield Step.OPEN
    yield Step.EXECUTE


def execute_many_plan(
    command: Command | AsyncCommand, param_sets: Iterable[RawDbParams]
) -> Plan[None]:
    yield Step.OPEN
    for params in param_sets:
        command.set_params(create_params(params))
        yield Step.EXECUTE


def execute_many_raw_plan(
    command: Command | AsyncCommand, param_sets: Iterable[RawParams]
) -> Plan[None]:
    yield Step.OPEN
    for params in param_sets:
        command.set_params_raw(params)
        yield Step.EXECUTE


def scalar_plan(command: Command | AsyncCommand, convert: Callable[[Any], T]) -> Plan[T]:
    yield Step.OPEN
    value = yield Step.SCALAR
    return convert(value)


def read_plan(command: Command | AsyncCommand, fn: Callable[[R], T]) -> Plan[T]:
    yield Step.OPEN
    reader = yield Step.READER
    try:
        return fn(reader)
    finally:
        reader.close()


def collect_rows(map_row: Callable[[R], T]) -> Callable[[R], list[T]]:
    """Build a reader function that maps every row, in reader order."""

    def collect(reader: R) -> list[T]:
        rows = []
        while reader.read():
            rows.append(map_row(reader))
        return rows

    return collect


def first_row(map_row: Callable[[R], T]) -> Callable[[R], T | None]:
    """Build a reader function that maps the first row, or returns None."""

    def first(reader: R) -> T | None:
        if reader.read():
            return map_row(reader)
        return None

    return first


# -- Runners --


def ensure_open(conn: Connection) -> None:
    """Open ``conn`` unless it is already open."""
    if not conn.is_open:
        logger.debug("Opening connection %r", conn)
        conn.open()


async def ensure_open_async(conn: AsyncConnection, token: CancellationToken | None = None) -> None:
    """Open ``conn`` unless it is already open, observing ``token`` if given."""
    if conn.is_open:
        return
    logger.debug("Opening connection %r", conn)
    if token is None:
        await conn.open()
    else:
        await token.guard(conn.open())


def _perform(command: Command, behavior: CommandBehavior, step: Step) -> Any:
    if step is Step.OPEN:
        ensure_open(command.connection)
        return None
    if step is Step.EXECUTE:
        return command.execute()
    if step is Step.SCALAR:
        return command.execute_scalar()
    return command.execute_reader(behavior)


def run_sync(unit: CommandUnit, plan_factory: Callable[[Command], Plan[T]]) -> T:
    """Consume ``unit`` and drive a plan with blocking calls."""
    command = unit.consume()
    behavior = unit.command_behavior
    logger.debug("Executing command: %s", command.text)
    plan = plan_factory(command)
    try:
        step = next(plan)
        while True:
            step = plan.send(_perform(command, behavior, step))
    except StopIteration as stop:
        result = stop.value
    command.dispose()
    return result


async def _perform_async(
    command: AsyncCommand, behavior: CommandBehavior, token: CancellationToken, step: Step
) -> Any:
    token.raise_if_cancelled()
    if step is Step.OPEN:
        await ensure_open_async(command.connection, token)
        return None
    if step is Step.EXECUTE:
        return await token.guard(command.execute())
    if step is Step.SCALAR:
        return await token.guard(command.execute_scalar())
    return await token.guard(command.execute_reader(behavior))


async def run_async(unit: CommandUnit, plan_factory: Callable[[AsyncCommand], Plan[T]]) -> T:
    """Consume ``unit`` and drive a plan, suspending at every step."""
    command = unit.consume()
    behavior = unit.command_behavior
    token = unit.cancellation_token
    logger.debug("Executing command asynchronously: %s", command.text)
    plan = plan_factory(command)
    try:
        step = next(plan)
        while True:
            step = plan.send(await _perform_async(command, behavior, token, step))
    except StopIteration as stop:
        result = stop.value
    command.dispose()
    return result


# -- Batches --


def note_rollback_failure(
    error: BaseException, transaction: Transaction | AsyncTransaction, rollback_error: Exception
) -> None:
    """Record a failed rollback on the error that triggered it."""
    logger.error(
        "Rollback of %r failed after %r", transaction, error, exc_info=rollback_error
    )
    error.add_note(f"Rollback also failed: {rollback_error!r}")
