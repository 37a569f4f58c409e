"""
querykit/db/results.py
----------------------
Lazy, closeable views over open cursors.

A CloseableIterator owns one DB-API cursor (the statement) and, through its
on_close callback, the pooled connection the cursor was opened on. Both are
released exactly once: on exhaustion, on an error while advancing, or on an
explicit close(). Use the iterators as context managers so that early exits
release the connection too.
"""

import warnings
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from querykit.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RowCursor:
    """
    Forward-only view of a cursor's result, positioned on one row at a time.

    Row transforms receive the RowCursor itself and read columns by
    position (``row[0]``) or by case-insensitive name (``row["id"]``).
    """

    def __init__(self, cursor) -> None:
        self._cursor = cursor
        self._row: Optional[tuple] = None
        self._positions: Optional[dict[str, int]] = None

    @property
    def columns(self) -> list[str]:
        description = self._cursor.description
        return [d[0] for d in description] if description else []

    def advance(self) -> bool:
        """Move to the next row. Returns False once the result is exhausted."""
        if self._cursor.description is None:
            # statement produced no result set (plain DML)
            self._row = None
            return False
        self._row = self._cursor.fetchone()
        return self._row is not None

    def _position(self, name: str) -> int:
        if self._positions is None:
            self._positions = {}
            for i, column in enumerate(self.columns):
                self._positions.setdefault(column.lower(), i)
        try:
            return self._positions[name.lower()]
        except KeyError:
            raise KeyError(f"No column named {name!r}; available: {self.columns}") from None

    def __getitem__(self, key: int | str) -> Any:
        if self._row is None:
            raise LookupError("Cursor is not positioned on a row")
        if isinstance(key, str):
            key = self._position(key)
        return self._row[key]

    def get(self, key: int | str, default: Any = None) -> Any:
        try:
            return self[key]
        except (KeyError, IndexError):
            return default

    def __len__(self) -> int:
        return len(self._row) if self._row is not None else 0

    def values(self) -> tuple:
        """The current row as a plain tuple."""
        if self._row is None:
            raise LookupError("Cursor is not positioned on a row")
        return tuple(self._row)

    def as_dict(self) -> dict[str, Any]:
        """The current row keyed by column name."""
        return dict(zip(self.columns, self.values()))


class CloseableIterator(ABC, Generic[T]):
    """Single-pass iterator that releases its statement when done."""

    def __init__(
        self,
        statement,
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._statement = statement
        self._on_close = on_close
        # told about driver errors raised while advancing, before cleanup
        self._on_error = on_error
        self._closed = False
        # True while positioned on an element that has not been returned yet
        self._ready = False

    @abstractmethod
    def _advance(self) -> bool:
        """Step the underlying source forward once."""

    @abstractmethod
    def _current(self) -> T:
        """Produce the element the source is positioned on."""

    @property
    def closed(self) -> bool:
        return self._closed

    def has_next(self) -> bool:
        """
        Report whether another element is available.

        Advances the source at most once per element; repeated calls
        before next() do not skip anything.
        """
        if self._closed:
            return False
        if not self._ready:
            try:
                self._ready = self._advance()
            except Exception as e:
                if self._on_error is not None:
                    self._on_error(e)
                self._abort()
                raise
            if not self._ready:
                self.close()
        return self._ready

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if not self.has_next():
            raise StopIteration
        self._ready = False
        try:
            return self._current()
        except Exception:
            self._abort()
            raise

    def close(self) -> None:
        """Close the statement and release the connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._statement is not None:
                self._statement.close()
        finally:
            if self._on_close is not None:
                self._on_close()

    def _abort(self) -> None:
        """Close while another exception is in flight; that exception wins."""
        try:
            self.close()
        except Exception as e:
            logger.error(f"Failed to close {self!r} during error cleanup: {e}")

    def __enter__(self) -> "CloseableIterator[T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self._abort()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        warnings.warn(
            f"{type(self).__name__} was garbage collected without being closed",
            ResourceWarning,
            stacklevel=2,
        )
        logger.warning(f"{self!r} abandoned before exhaustion; closing it now")
        self._abort()


class ResultSetIterator(CloseableIterator[T]):
    """Applies a row transform lazily, one cursor row per element."""

    def __init__(
        self,
        statement,
        rows: RowCursor,
        transform: Callable[[RowCursor], T],
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        super().__init__(statement, on_close, on_error)
        self._rows = rows
        self._transform = transform

    def _advance(self) -> bool:
        return self._rows.advance()

    def _current(self) -> T:
        return self._transform(self._rows)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ResultSetIterator {state}>"


class BatchIterator(CloseableIterator[int]):
    """Yields per-statement update counts as batches are executed."""

    def __init__(
        self,
        statement,
        counts: Iterator[int],
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        super().__init__(statement, on_close, on_error)
        self._counts = counts
        self._value: Optional[int] = None

    def _advance(self) -> bool:
        try:
            self._value = next(self._counts)
        except StopIteration:
            return False
        return True

    def _current(self) -> int:
        return self._value

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<BatchIterator {state}>"
