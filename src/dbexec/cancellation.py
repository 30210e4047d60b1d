"""Cooperative cancellation for the async execution path."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable
from typing import TypeVar

from dbexec.errors import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _release(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class CancellationToken:
    """A cancellation signal shared by every suspension point of one call.

    Cancellation is cooperative: it is observed only when the async engine
    enters a suspension point or while it is awaiting one. Work already
    running synchronously (row mapping, conversion) is never interrupted.
    ``cancel()`` may be called from any thread.
    """

    def __init__(self, *, can_be_cancelled: bool = True) -> None:
        """Initialize an untriggered token."""
        self._can_be_cancelled = can_be_cancelled
        self._cancelled = False
        self._lock = threading.Lock()
        self._waiters: set[asyncio.Future[None]] = set()
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def none(cls) -> CancellationToken:
        """Return a token that can never be cancelled."""
        return cls(can_be_cancelled=False)

    @property
    def can_be_cancelled(self) -> bool:
        """Whether ``cancel()`` has any effect on this token."""
        return self._can_be_cancelled

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation and wake every pending suspension point."""
        if not self._can_be_cancelled:
            raise ValueError("This cancellation token cannot be cancelled")
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            waiters = list(self._waiters)
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        logger.debug("Cancellation requested (%d pending waiters)", len(waiters))
        for waiter in waiters:
            waiter.get_loop().call_soon_threadsafe(_release, waiter)

    def cancel_after(self, delay: float) -> None:
        """Schedule ``cancel()`` on the running loop after ``delay`` seconds."""
        if not self._can_be_cancelled:
            raise ValueError("This cancellation token cannot be cancelled")
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(delay, self.cancel)

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancellation has been requested."""
        if self._cancelled:
            raise OperationCancelledError("The operation was cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        When the token fires, the pending work is cancelled and
        OperationCancelledError is raised. Failures of the work itself
        propagate unchanged.
        """
        if self._cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        if not self._can_be_cancelled:
            return await awaitable

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)
        waiter: asyncio.Future[None] = loop.create_future()
        with self._lock:
            self._waiters.add(waiter)
            fired = self._cancelled
        if fired:
            _release(waiter)
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            with self._lock:
                self._waiters.discard(waiter)
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Cancelled operation finished with %r", task.exception())
        raise OperationCancelledError("The operation was cancelled")
