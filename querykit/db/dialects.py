"""
querykit/db/dialects.py
-----------------------
Per-database statement execution strategies.

A Dialect turns one operation (select, insert, update, delete, merge, batch)
into driver calls on a live connection. It binds parameters and knows how
its database reports generated keys. It never acquires or releases
connections; that stays with the QueryExecutor.
"""

import re
from abc import ABC, abstractmethod
from itertools import islice
from typing import Any, Iterable, Iterator, Optional, Sequence

from querykit.db.results import RowCursor
from querykit.errors import UnsupportedKeyRetrievalError
from querykit.utils.logger import get_logger

logger = get_logger(__name__)

KeyColumns = Optional[Sequence[int | str]]

_RETURNING = re.compile(r"\bRETURNING\b", re.IGNORECASE)
# single-quoted literals (with '' escapes) and double-quoted identifiers
_QUOTED = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")


class Dialect(ABC):
    """Abstract base for statement execution against one database type."""

    name: str = "generic"
    placeholder: str = "?"

    # ── PARAMETERS ────────────────────────────────────────

    def bind(self, params: Sequence[Any]) -> Any:
        """Convert positional parameters into what the driver's execute() expects."""
        return tuple(params)

    def _open(self, conn, sql: str, params: Sequence[Any]):
        """Execute on a fresh cursor; the cursor is closed if execution fails."""
        cur = conn.cursor()
        try:
            cur.execute(sql, self.bind(params))
        except Exception:
            cur.close()
            raise
        return cur

    def _count(self, conn, sql: str, params: Sequence[Any]) -> int:
        cur = self._open(conn, sql, params)
        try:
            # DDL and other non-DML statements report -1
            return max(cur.rowcount, 0)
        finally:
            cur.close()

    # ── OPERATIONS ────────────────────────────────────────

    def select(self, conn, sql: str, params: Sequence[Any] = ()) -> tuple[Any, RowCursor]:
        """
        Run a query.

        Returns:
            The open cursor and a RowCursor over its result.
        """
        cur = self._open(conn, sql, params)
        return cur, RowCursor(cur)

    @abstractmethod
    def insert(
        self,
        conn,
        sql: str,
        params: Sequence[Any] = (),
        columns: KeyColumns = None,
    ) -> tuple[Any, RowCursor]:
        """
        Run an insert and expose its generated keys.

        Args:
            columns: Key columns to return, by name or by 1-based index.
                None asks for the database's default generated key.

        Raises:
            UnsupportedKeyRetrievalError: If the database cannot honour `columns`.
        """
        raise NotImplementedError

    def update(self, conn, sql: str, params: Sequence[Any] = ()) -> int:
        """Returns the number of rows changed, 0 for statements that change none."""
        return self._count(conn, sql, params)

    def delete(self, conn, sql: str, params: Sequence[Any] = ()) -> int:
        """Returns the number of rows removed."""
        return self._count(conn, sql, params)

    @abstractmethod
    def merge(self, conn, sql: str, params: Sequence[Any] = ()) -> tuple[Any, RowCursor]:
        """Run an upsert; the RowCursor yields keys only for inserted rows."""
        raise NotImplementedError

    def execute_batch(
        self,
        conn,
        sql: str,
        params: Iterable[Sequence[Any]],
        batch_size: int,
    ) -> tuple[Any, Iterator[int]]:
        """
        Run one statement for every parameter tuple, `batch_size` tuples at a time.

        Parameters are pulled lazily: nothing executes until the returned
        iterator is consumed.

        Returns:
            The cursor used and an iterator of per-statement update counts.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        cur = conn.cursor()
        return cur, self._batches(cur, sql, iter(params), batch_size)

    def _batches(self, cur, sql: str, params: Iterator[Sequence[Any]], batch_size: int) -> Iterator[int]:
        while True:
            chunk = list(islice(params, batch_size))
            if not chunk:
                return
            logger.debug(f"Executing batch of {len(chunk)} statement(s)")
            yield from self._run_batch(cur, sql, chunk)

    def _run_batch(self, cur, sql: str, chunk: list[Sequence[Any]]) -> list[int]:
        counts = []
        for params in chunk:
            cur.execute(sql, self.bind(params))
            counts.append(max(cur.rowcount, 0))
        return counts

    # ── HELPERS ───────────────────────────────────────────

    def _key_names(self, columns: Sequence[int | str]) -> list[str]:
        if any(not isinstance(c, str) for c in columns):
            raise UnsupportedKeyRetrievalError(
                f"{self.name} cannot return generated keys by column index; use column names"
            )
        return list(columns)

    @staticmethod
    def _returning(sql: str, names: Sequence[str]) -> str:
        """Append a RETURNING clause unless the statement already has one."""
        if _RETURNING.search(_QUOTED.sub("", sql)):
            return sql
        return f"{sql.rstrip().rstrip(';')} RETURNING {', '.join(names)}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SQLiteDialect(Dialect):
    """sqlite3 conventions: qmark parameters, keys via last_insert_rowid()."""

    name = "sqlite"
    placeholder = "?"

    def insert(self, conn, sql, params=(), columns=None):
        if columns:
            returning = self._returning(sql, self._key_names(columns))
            cur = self._open(conn, returning, params)
            return cur, RowCursor(cur)

        cur = self._open(conn, sql, params)
        try:
            if cur.rowcount > 0:
                cur.execute("SELECT last_insert_rowid()")
        except Exception:
            cur.close()
            raise
        return cur, RowCursor(cur)

    # Inserting an explicit rowid into a temp table pins last_insert_rowid()
    # to a value no real insert can produce by accident.
    _MERGE_MARKER = -(2 ** 63)

    def merge(self, conn, sql, params=()):
        cur = conn.cursor()
        try:
            cur.execute("CREATE TEMP TABLE IF NOT EXISTS querykit_merge_marker (id INTEGER PRIMARY KEY)")
            cur.execute("INSERT OR REPLACE INTO temp.querykit_merge_marker (id) VALUES (?)", (self._MERGE_MARKER,))
            cur.execute(sql, self.bind(params))
            if cur.rowcount > 0:
                inserted = cur.execute("SELECT last_insert_rowid()").fetchone()[0]
                if inserted != self._MERGE_MARKER:
                    cur.execute("SELECT ?", (inserted,))
        except Exception:
            cur.close()
            raise
        return cur, RowCursor(cur)


class PostgresDialect(Dialect):
    """psycopg2 conventions: format parameters, keys via RETURNING."""

    name = "postgres"
    placeholder = "%s"

    def bind(self, params):
        # psycopg2 skips %-interpolation entirely when given None
        return tuple(params) if params else None

    def insert(self, conn, sql, params=(), columns=None):
        names = self._key_names(columns) if columns else ["*"]
        cur = self._open(conn, self._returning(sql, names), params)
        return cur, RowCursor(cur)

    def merge(self, conn, sql, params=()):
        # MERGE only yields rows when written with its own RETURNING clause
        cur = self._open(conn, sql, params)
        return cur, RowCursor(cur)


_DIALECTS: dict[str, type[Dialect]] = {
    "sqlite": SQLiteDialect,
    "sqlite3": SQLiteDialect,
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "pg": PostgresDialect,
}


def dialect_for(engine: str) -> Dialect:
    """
    Look up the dialect for an engine name.

    Raises:
        ValueError: If the engine is not supported.
    """
    try:
        return _DIALECTS[(engine or "").lower()]()
    except KeyError:
        raise ValueError(f"Unsupported engine: {engine}") from None
