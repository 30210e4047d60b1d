"""Blocking execution primitives.

Every primitive consumes a CommandUnit: it opens the connection if
needed, runs the command, disposes it and returns the result. Driver
failures propagate unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from functools import partial
from typing import Any, TypeVar

from dbexec.db.backend import Connection, Reader, Transaction
from dbexec.engine import (
    collect_rows,
    ensure_open,
    execute_many_plan,
    execute_many_raw_plan,
    execute_plan,
    first_row,
    note_rollback_failure,
    read_plan,
    run_sync,
    scalar_plan,
)
from dbexec.params import RawDbParams, RawParams
from dbexec.unit import CommandUnit

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=Reader)


def execute(unit: CommandUnit) -> None:
    """Execute a parameterized command with no results."""
    run_sync(unit, execute_plan)


def execute_many(unit: CommandUnit, param_sets: Iterable[RawDbParams]) -> None:
    """Execute the command once per set of typed parameters, in order.

    The first failing set aborts the remaining ones.
    """
    run_sync(unit, partial(execute_many_plan, param_sets=param_sets))


def execute_many_raw(unit: CommandUnit, param_sets: Iterable[RawParams]) -> None:
    """Execute the command once per set of untyped parameters, in order."""
    run_sync(unit, partial(execute_many_raw_plan, param_sets=param_sets))


def scalar(unit: CommandUnit, convert: Callable[[Any], T]) -> T:
    """Execute and convert the first column of the first row."""
    return run_sync(unit, partial(scalar_plan, convert=convert))


def read(unit: CommandUnit, fn: Callable[[R], T]) -> T:
    """Execute and apply ``fn`` to the reader, which is closed when ``fn`` returns or raises."""
    return run_sync(unit, partial(read_plan, fn=fn))


def query(unit: CommandUnit, map_row: Callable[[R], T]) -> list[T]:
    """Execute, map every row and return the mapped rows in reader order."""
    return read(unit, collect_rows(map_row))


def query_single(unit: CommandUnit, map_row: Callable[[R], T]) -> T | None:
    """Execute and map the first row only. Returns None when there are no rows."""
    return read(unit, first_row(map_row))


def batch(fn: Callable[[Transaction], T], conn: Connection) -> T:
    """Run ``fn`` inside one transaction on ``conn``: all of it or none of it.

    Commits and returns ``fn``'s result on success. On any failure the
    transaction is rolled back and the original failure is re-raised.
    """
    ensure_open(conn)
    with conn.begin_transaction() as transaction:
        try:
            result = fn(transaction)
            transaction.commit()
            return result
        except BaseException as exc:
            logger.warning("Rolling back transaction after %r", exc)
            try:
                transaction.rollback()
            except Exception as rollback_exc:
                note_rollback_failure(exc, transaction, rollback_exc)
            raise
