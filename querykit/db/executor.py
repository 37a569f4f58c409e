"""
querykit/db/executor.py
-----------------------
The QueryExecutor: borrows a pooled connection for every statement, times
it, logs it, and hands results back as plain values or lazy iterators.

Every statement is logged at INFO with its text, parameters and elapsed
milliseconds. Failures are logged at ERROR with the executor's identity and
re-raised unchanged; nothing is retried.
"""

import logging
import time
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

from querykit.config import BATCH_SIZE
from querykit.db.dialects import Dialect, KeyColumns
from querykit.db.pool import ConnectionPool
from querykit.db.results import BatchIterator, ResultSetIterator, RowCursor
from querykit.errors import NullConnectionError
from querykit.models.query import Query
from querykit.utils.logger import get_logger

T = TypeVar("T")

Transform = Callable[[RowCursor], T]


def _first_key(row: RowCursor) -> int:
    return int(row[0])


def _values(row: RowCursor) -> tuple:
    return row.values()


class QueryExecutor:
    """
    Runs statements against a connection pool through one dialect.

    Usage:
        executor = QueryExecutor(SQLitePool("app.db"), SQLiteDialect())
        with executor.select("SELECT id, name FROM users WHERE active = ?", 1) as rows:
            for user_id, name in rows:
                ...
        executor.shutdown()

    Lazy results (select, insert, merge, execute_batch) keep their
    connection until they are exhausted or closed.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        dialect: Dialect,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.pool = pool
        self.dialect = dialect
        self.name = name or dialect.name
        self.logger = logger or get_logger(__name__)

    # ── CONNECTION LIFECYCLE ──────────────────────────────

    def _acquire(self):
        try:
            conn = self.pool.acquire()
        except Exception as e:
            self.logger.error(f"{self}, threw exception while acquiring a connection: {e}")
            raise
        if conn is None:
            self.logger.error(f"{self} pool object returned a null connection")
            raise NullConnectionError(f"{self.pool} returned no connection")
        return conn

    def _release(self, conn) -> None:
        self.pool.release(conn)

    def _execute(self, query: Query, fn: Callable[[Any], T], keep_open: bool = False) -> T:
        """
        Borrow a connection, run `fn` on it, log the timing, give the connection back.

        Args:
            query: The statement being run; used for logging only.
            fn: Does the actual work against the live connection.
            keep_open: On success, leave the connection borrowed. `fn` must
                then return an object that releases it when closed.
        """
        started = time.perf_counter()
        conn = self._acquire()
        try:
            output = fn(conn)
        except Exception as e:
            self._log_failure(query)(e)
            try:
                self._release(conn)
            except Exception as release_error:
                self.logger.error(f"{self} failed to release connection: {release_error}")
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.logger.info(f"Timed: {query.describe()}\n  timed for {elapsed_ms:.0f} ms")
        if not keep_open:
            self._release(conn)
        return output

    def _log_failure(self, query: Query) -> Callable[[Exception], None]:
        def log(e: Exception) -> None:
            self.logger.error(f"{self}, threw exception: {e}{query.describe()}")

        return log

    def _lazy(
        self,
        query: Query,
        run: Callable[[Any], tuple[Any, RowCursor]],
        transform: Transform[T],
    ) -> ResultSetIterator[T]:
        def fn(conn) -> ResultSetIterator[T]:
            statement, rows = run(conn)
            return ResultSetIterator(
                statement,
                rows,
                transform,
                on_close=lambda: self._release(conn),
                on_error=self._log_failure(query),
            )

        return self._execute(query, fn, keep_open=True)

    # ── RAW STATEMENTS ────────────────────────────────────

    def execute_statement(self, sql: str) -> bool:
        """
        Run any statement without parameters.

        Returns:
            True if the first result is a row set; False for update
            counts or statements with no result.
        """
        def fn(conn) -> bool:
            cur = conn.cursor()
            try:
                cur.execute(sql)
                return cur.description is not None
            finally:
                cur.close()

        return self._execute(Query.of(sql), fn)

    def execute_update(self, sql: str) -> int:
        """
        Run a statement without parameters.

        Returns:
            The row count for DML statements, 0 for statements that return nothing.
        """
        def fn(conn) -> int:
            cur = conn.cursor()
            try:
                cur.execute(sql)
                return max(cur.rowcount, 0)
            finally:
                cur.close()

        return self._execute(Query.of(sql), fn)

    # ── READ ──────────────────────────────────────────────

    def select(self, sql: str, *params: Any, transform: Transform[T] = _values) -> ResultSetIterator[T]:
        """
        Run a query and return a lazy iterator over its rows.

        `transform` is applied to each row only as the iterator is consumed.
        The iterator holds a pooled connection until it is exhausted or
        closed; use it as a context manager when it may be abandoned early.
        """
        query = Query.of(sql, *params)
        return self._lazy(query, lambda conn: self.dialect.select(conn, query.sql, query.params), transform)

    def select_one(self, sql: str, *params: Any, transform: Transform[T] = _values) -> Optional[T]:
        """
        Run a query and transform only its first row.

        Returns:
            The transformed first row, or None when the query matched nothing.
            Any further rows are never read.
        """
        query = Query.of(sql, *params)

        def fn(conn) -> Optional[T]:
            statement, rows = self.dialect.select(conn, query.sql, query.params)
            try:
                return transform(rows) if rows.advance() else None
            finally:
                statement.close()

        return self._execute(query, fn)

    def eagerly_select(self, sql: str, *params: Any, transform: Transform[T] = _values) -> list[T]:
        """Same as select(), drained into a list."""
        with self.select(sql, *params, transform=transform) as rows:
            return list(rows)

    # ── WRITE ─────────────────────────────────────────────

    def insert(
        self,
        sql: str,
        *params: Any,
        columns: KeyColumns = None,
        transform: Optional[Transform[T]] = None,
    ) -> ResultSetIterator[T]:
        """
        Run an insert and return a lazy iterator over the generated keys.

        Args:
            columns: Key columns to return. None asks for the table's
                default generated key.
            transform: Applied to each key row. Defaults to the first
                column as an int.
        """
        query = Query.of(sql, *params)
        return self._lazy(
            query,
            lambda conn: self.dialect.insert(conn, query.sql, query.params, columns),
            transform or _first_key,
        )

    def update(self, sql: str, *params: Any) -> int:
        """Returns the number of rows changed, 0 for DDL."""
        query = Query.of(sql, *params)
        return self._execute(query, lambda conn: self.dialect.update(conn, query.sql, query.params))

    def delete(self, sql: str, *params: Any) -> int:
        """Returns the number of rows deleted."""
        query = Query.of(sql, *params)
        return self._execute(query, lambda conn: self.dialect.delete(conn, query.sql, query.params))

    def merge(self, sql: str, *params: Any) -> ResultSetIterator[int]:
        """
        Run an upsert and return a lazy iterator over the keys it generated.

        The iterator is empty when the statement inserted nothing. Use
        update() when the affected row count is what matters.
        """
        query = Query.of(sql, *params)
        return self._lazy(query, lambda conn: self.dialect.merge(conn, query.sql, query.params), _first_key)

    def execute_batch(
        self,
        sql: str,
        params: Iterable[Sequence[Any]],
        batch_size: int = BATCH_SIZE,
    ) -> BatchIterator:
        """
        Run `sql` once per parameter tuple, at most `batch_size` tuples per batch.

        Returns:
            A lazy iterator of per-statement update counts. Statements run as
            the iterator is consumed, so failures surface (and are logged)
            from iteration, and the batch timing is logged on close.
        """
        query = Query.of(sql)
        started = time.perf_counter()

        def finish(conn) -> None:
            try:
                self._release(conn)
            finally:
                elapsed_ms = (time.perf_counter() - started) * 1000
                self.logger.info(f"Timed: {query.describe()}\n  batch timed for {elapsed_ms:.0f} ms")

        def fn(conn) -> BatchIterator:
            statement, counts = self.dialect.execute_batch(conn, query.sql, params, batch_size)
            return BatchIterator(
                statement,
                counts,
                on_close=lambda: finish(conn),
                on_error=self._log_failure(query),
            )

        self.logger.debug(f"{self} preparing batch (batch_size={batch_size})")
        return self._execute(query, fn, keep_open=True)

    # ── SHUTDOWN ──────────────────────────────────────────

    def shutdown(self) -> None:
        """Shut down the underlying pool. Call before discarding the executor."""
        self.pool.shutdown()
        self.logger.info(f"{self} shut down.")

    def __enter__(self) -> "QueryExecutor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"QueryExecutor({self.name!r}, pool={self.pool!r})"
