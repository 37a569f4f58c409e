"""
Shared fixtures for querykit tests.

Executor tests run against real SQLite files under tmp_path, wrapped in a
pool that counts every acquire and release.
"""

import pytest

from querykit.db.dialects import SQLiteDialect
from querykit.db.executor import QueryExecutor
from querykit.db.pool import ConnectionPool, SQLitePool


class CountingPool(ConnectionPool):
    """Delegates to a real pool and records acquire/release calls."""

    def __init__(self, inner: ConnectionPool):
        super().__init__()
        self.inner = inner
        self.acquired = 0
        self.released = 0

    def acquire(self):
        conn = self.inner.acquire()
        if conn is not None:
            self.acquired += 1
        return conn

    def release(self, conn):
        self.released += 1
        self.inner.release(conn)

    def shutdown(self):
        self._closed = True
        self.inner.shutdown()

    @property
    def outstanding(self) -> int:
        return self.acquired - self.released


class NullPool(ConnectionPool):
    """A pool that never has a connection to give."""

    def __init__(self):
        super().__init__()
        self.released = 0

    def acquire(self):
        return None

    def release(self, conn):
        self.released += 1

    def shutdown(self):
        self._closed = True


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def sqlite_pool(db_path):
    pool = SQLitePool(db_path, min_conn=1, max_conn=3)
    yield pool
    pool.shutdown()


@pytest.fixture
def pool(sqlite_pool):
    return CountingPool(sqlite_pool)


@pytest.fixture
def executor(pool):
    """Executor over a database with an auto-increment table `t`."""
    executor = QueryExecutor(pool, SQLiteDialect(), name="test")
    executor.execute_update("CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT, x INTEGER)")
    # reset so tests only see their own operations
    pool.acquired = pool.released = 0
    return executor


@pytest.fixture
def seeded(executor, pool):
    """Executor whose table `t` holds x = 10, 20, 30 (ids 1, 2, 3)."""
    for x in (10, 20, 30):
        with executor.insert("INSERT INTO t (x) VALUES (?)", x) as keys:
            list(keys)
    pool.acquired = pool.released = 0
    return executor
