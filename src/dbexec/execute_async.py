"""Async execution primitives.

Same semantics as :mod:`dbexec.execute`. Opening the connection,
executing, fetching a scalar and acquiring a reader are suspension
points that observe the unit's cancellation token; rows are advanced
and mapped synchronously once the reader is acquired.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from functools import partial
from typing import Any, TypeVar

from dbexec.cancellation import CancellationToken
from dbexec.db.backend import AsyncConnection, AsyncTransaction, Reader
from dbexec.engine import (
    collect_rows,
    ensure_open_async,
    execute_many_plan,
    execute_many_raw_plan,
    execute_plan,
    first_row,
    note_rollback_failure,
    read_plan,
    run_async,
    scalar_plan,
)
from dbexec.params import RawDbParams, RawParams
from dbexec.unit import CommandUnit

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=Reader)


async def execute(unit: CommandUnit) -> None:
    """Execute a parameterized command with no results."""
    await run_async(unit, execute_plan)


async def execute_many(unit: CommandUnit, param_sets: Iterable[RawDbParams]) -> None:
    """Execute the command once per set of typed parameters, in order.

    The first failing set, or a cancellation, aborts the remaining ones.
    """
    await run_async(unit, partial(execute_many_plan, param_sets=param_sets))


async def execute_many_raw(unit: CommandUnit, param_sets: Iterable[RawParams]) -> None:
    """Execute the command once per set of untyped parameters, in order."""
    await run_async(unit, partial(execute_many_raw_plan, param_sets=param_sets))


async def scalar(unit: CommandUnit, convert: Callable[[Any], T]) -> T:
    """Execute and convert the first column of the first row."""
    return await run_async(unit, partial(scalar_plan, convert=convert))


async def read(unit: CommandUnit, fn: Callable[[R], T]) -> T:
    """Execute and apply ``fn`` to the reader, which is closed when ``fn`` returns or raises."""
    return await run_async(unit, partial(read_plan, fn=fn))


async def query(unit: CommandUnit, map_row: Callable[[R], T]) -> list[T]:
    """Execute, map every row and return the mapped rows in reader order."""
    return await read(unit, collect_rows(map_row))


async def query_single(unit: CommandUnit, map_row: Callable[[R], T]) -> T | None:
    """Execute and map the first row only. Returns None when there are no rows."""
    return await read(unit, first_row(map_row))


async def batch(
    fn: Callable[[AsyncTransaction], Awaitable[T]],
    conn: AsyncConnection,
    cancellation_token: CancellationToken | None = None,
) -> T:
    """Await ``fn`` inside one transaction on ``conn``: all of it or none of it.

    Commits and returns ``fn``'s result on success. On any failure,
    cancellation included, the transaction is rolled back and the
    original failure is re-raised.
    """
    token = cancellation_token or CancellationToken.none()
    await ensure_open_async(conn, token)
    transaction = await token.guard(conn.begin_transaction())
    try:
        result = await fn(transaction)
        await transaction.commit()
        return result
    except BaseException as exc:
        logger.warning("Rolling back transaction after %r", exc)
        try:
            await transaction.rollback()
        except Exception as rollback_exc:
            note_rollback_failure(exc, transaction, rollback_exc)
        raise
    finally:
        await transaction.close()
