"""Forward-only readers shared by the driver adapters."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

from dbexec.db.backend import CommandBehavior
from dbexec.errors import DbExecError


class RowReader:
    """Forward-only reader over rows pulled one at a time from ``fetch``.

    ``fetch`` returns the next row as a sequence, or None when the result
    set is exhausted. SINGLE_ROW stops after the first row and
    SCHEMA_ONLY exposes columns without rows.
    """

    def __init__(
        self,
        columns: Sequence[str],
        fetch: Callable[[], Sequence[Any] | None],
        behavior: CommandBehavior = CommandBehavior.DEFAULT,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        """Initialize with column names and a row source."""
        self._columns = list(columns)
        self._ordinals = {name: i for i, name in reversed(list(enumerate(self._columns)))}
        self._fetch = fetch
        self._behavior = behavior
        self._on_close = on_close
        self._current: Sequence[Any] | None = None
        self._exhausted = bool(behavior & CommandBehavior.SCHEMA_ONLY)
        self._closed = False

    @property
    def field_count(self) -> int:
        """Number of columns in the result set."""
        return len(self._columns)

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    def read(self) -> bool:
        """Advance to the next row. Returns False once the rows are exhausted."""
        if self._closed:
            raise DbExecError("Reader is closed")
        if self._exhausted:
            self._current = None
            return False
        row = self._fetch()
        if row is None:
            self._exhausted = True
            self._current = None
            return False
        self._current = row
        if self._behavior & CommandBehavior.SINGLE_ROW:
            self._exhausted = True
        return True

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._columns)

    def get_ordinal(self, name: str) -> int:
        """Return the ordinal of a named column, falling back to a case-insensitive match."""
        if name in self._ordinals:
            return self._ordinals[name]
        lowered = name.lower()
        for i, column in enumerate(self._columns):
            if column.lower() == lowered:
                return i
        raise KeyError(name)

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value of the current row by name or ordinal."""
        if self._current is None:
            raise DbExecError("No current row; call read() first")
        if isinstance(key, str):
            key = self.get_ordinal(key)
        return self._current[key]

    def get(self, key: str | int, default: Any = None) -> Any:
        """Get a column value, or ``default`` when it is NULL."""
        value = self[key]
        return default if value is None else value

    def is_null(self, key: str | int) -> bool:
        """Whether a column of the current row is NULL."""
        return self[key] is None

    def close(self) -> None:
        """Release the row source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._current = None
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> RowReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BufferedReader(RowReader):
    """Reader over a result set that was fetched eagerly.

    Async drivers fetch the whole result while the reader is acquired, so
    advancing it never suspends.
    """

    def __init__(
        self,
        columns: Sequence[str],
        rows: Iterable[Sequence[Any]],
        behavior: CommandBehavior = CommandBehavior.DEFAULT,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        """Initialize with column names and the fetched rows."""
        self._rows = iter(rows)
        super().__init__(columns, self._next_row, behavior, on_close)

    def _next_row(self) -> Sequence[Any] | None:
        return next(self._rows, None)
