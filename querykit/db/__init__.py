"""
db/ - Database Layer
====================
Connection pools, per-database dialects, lazy result iterators and the
QueryExecutor that ties them together.
"""

from querykit.db.dialects import Dialect, PostgresDialect, SQLiteDialect, dialect_for
from querykit.db.executor import QueryExecutor
from querykit.db.factory import make_executor
from querykit.db.pool import ConnectionPool, PostgresPool, SQLitePool
from querykit.db.results import BatchIterator, CloseableIterator, ResultSetIterator, RowCursor

__all__ = [
    "BatchIterator",
    "CloseableIterator",
    "ConnectionPool",
    "Dialect",
    "PostgresDialect",
    "PostgresPool",
    "QueryExecutor",
    "ResultSetIterator",
    "RowCursor",
    "SQLiteDialect",
    "SQLitePool",
    "dialect_for",
    "make_executor",
]
