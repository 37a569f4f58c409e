"""
querykit
========
Pooled, timed and logged SQL execution over DB-API drivers.
"""

from querykit.db import (
    BatchIterator,
    CloseableIterator,
    ConnectionPool,
    Dialect,
    PostgresDialect,
    PostgresPool,
    QueryExecutor,
    ResultSetIterator,
    RowCursor,
    SQLiteDialect,
    SQLitePool,
    dialect_for,
    make_executor,
)
from querykit.errors import (
    NullConnectionError,
    PoolClosedError,
    QueryKitError,
    UnsupportedKeyRetrievalError,
)
from querykit.models import Query

__all__ = [
    "BatchIterator",
    "CloseableIterator",
    "ConnectionPool",
    "Dialect",
    "NullConnectionError",
    "PoolClosedError",
    "PostgresDialect",
    "PostgresPool",
    "Query",
    "QueryExecutor",
    "QueryKitError",
    "ResultSetIterator",
    "RowCursor",
    "SQLiteDialect",
    "SQLitePool",
    "UnsupportedKeyRetrievalError",
    "dialect_for",
    "make_executor",
]
