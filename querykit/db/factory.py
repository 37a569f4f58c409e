"""
querykit/db/factory.py
----------------------
Builds a ready-to-use QueryExecutor (pool + dialect) for an engine name.
"""

from typing import Optional

from querykit.config import DATABASE_URL, SQLITE_PATH
from querykit.db.dialects import PostgresDialect, SQLiteDialect, dialect_for
from querykit.db.executor import QueryExecutor
from querykit.db.pool import PostgresPool, SQLitePool
from querykit.utils.logger import get_logger

logger = get_logger(__name__)


def make_executor(engine: str, target: Optional[str] = None, **pool_options) -> QueryExecutor:
    """
    Create an executor for `engine`.

    Args:
        engine: 'sqlite' or 'postgres' (aliases: 'sqlite3', 'postgresql', 'pg').
        target: Database file for SQLite, DSN for PostgreSQL. Falls back to
            SQLITE_PATH / DATABASE_URL from the environment.
        **pool_options: Passed to the pool constructor (min_conn, max_conn, ...).

    Raises:
        ValueError: If the engine is not supported.
    """
    dialect = dialect_for(engine)
    if isinstance(dialect, SQLiteDialect):
        pool = SQLitePool(target or SQLITE_PATH, **pool_options)
    elif isinstance(dialect, PostgresDialect):
        pool = PostgresPool(target or DATABASE_URL, **pool_options)
    else:
        raise ValueError(f"No connection pool for engine: {engine}")
    logger.info(f"Created {dialect.name} executor")
    return QueryExecutor(pool, dialect)
