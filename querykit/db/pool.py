"""
querykit/db/pool.py
-------------------
Connection pools handed to the QueryExecutor.

PostgreSQL uses psycopg2's ThreadedConnectionPool; SQLite uses a small
lock-guarded pool of sqlite3 connections. Every pool hands out connections
in autocommit mode and reports exhaustion by returning None from acquire().
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import psycopg2
from psycopg2 import pool

from querykit.config import (
    DATABASE_URL,
    DB_POOL_MAX,
    DB_POOL_MIN,
    SQLITE_PATH,
    SQLITE_TIMEOUT,
)
from querykit.errors import PoolClosedError
from querykit.utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionPool(ABC):
    """Interface the executor relies on: acquire, release, shutdown."""

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def acquire(self) -> Optional[Any]:
        """
        Borrow a connection.

        Returns:
            A DB-API connection, or None if the pool has none to give.

        Raises:
            PoolClosedError: If shutdown() has already been called.
        """
        raise NotImplementedError

    @abstractmethod
    def release(self, conn: Any) -> None:
        """Return a connection obtained from acquire()."""
        raise NotImplementedError

    @abstractmethod
    def shutdown(self) -> None:
        """Close every connection owned by the pool."""
        raise NotImplementedError

    def _check_open(self) -> None:
        if self._closed:
            raise PoolClosedError(f"{self} has been shut down")


class PostgresPool(ConnectionPool):
    """Thread-safe PostgreSQL pool backed by psycopg2."""

    def __init__(
        self,
        dsn: str = DATABASE_URL,
        min_conn: int = DB_POOL_MIN,
        max_conn: int = DB_POOL_MAX,
    ) -> None:
        """
        Args:
            dsn: libpq connection string or URL.
            min_conn: Minimum number of connections to keep open.
            max_conn: Maximum number of connections allowed.

        Raises:
            psycopg2.OperationalError: If the database is unreachable.
        """
        super().__init__()
        try:
            self._pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
        except psycopg2.OperationalError as e:
            logger.error(f"Failed to initialize PostgreSQL pool: {e}")
            raise
        self.max_conn = max_conn
        logger.info(f"PostgreSQL connection pool initialized (min={min_conn}, max={max_conn}).")

    def acquire(self):
        self._check_open()
        try:
            conn = self._pool.getconn()
        except pool.PoolError as e:
            logger.warning(f"{self} could not supply a connection: {e}")
            return None
        conn.autocommit = True
        return conn

    def release(self, conn) -> None:
        if self._closed:
            conn.close()
            return
        self._pool.putconn(conn)

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pool.closeall()
        logger.info("PostgreSQL connection pool closed.")

    def __repr__(self) -> str:
        return f"PostgresPool(max_conn={self.max_conn})"


class SQLitePool(ConnectionPool):
    """
    Lock-guarded pool of sqlite3 connections to one database file.

    Usage:
        sqlite_pool = SQLitePool("app.db", max_conn=4)
        conn = sqlite_pool.acquire()
        try:
            conn.execute("SELECT 1")
        finally:
            sqlite_pool.release(conn)
        sqlite_pool.shutdown()
    """

    def __init__(
        self,
        database: str = SQLITE_PATH,
        min_conn: int = DB_POOL_MIN,
        max_conn: int = DB_POOL_MAX,
        timeout: float = SQLITE_TIMEOUT,
        acquire_timeout: float = 0.0,
    ) -> None:
        """
        Args:
            database: Path to the SQLite database file.
            min_conn: Connections opened eagerly at construction.
            max_conn: Maximum number of connections allowed.
            timeout: SQLite busy timeout, in seconds.
            acquire_timeout: How long acquire() waits for a free connection
                before giving up and returning None.
        """
        super().__init__()
        if min_conn < 0 or max_conn < 1 or min_conn > max_conn:
            raise ValueError(f"Invalid pool bounds: min={min_conn}, max={max_conn}")
        self.database = str(database)
        self.max_conn = max_conn
        self.timeout = timeout
        self.acquire_timeout = acquire_timeout
        self._idle: list[sqlite3.Connection] = []
        self._in_use: set[sqlite3.Connection] = set()
        self._available = threading.Condition(threading.Lock())

        for _ in range(min_conn):
            self._idle.append(self._connect())
        logger.info(
            f"SQLite connection pool initialized for {self.database} "
            f"(min={min_conn}, max={max_conn})."
        )

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None puts the connection in autocommit mode
        conn = sqlite3.connect(
            self.database,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA foreign_keys=ON")
        logger.debug(f"Opened new connection to {self.database}")
        return conn

    def _size(self) -> int:
        return len(self._idle) + len(self._in_use)

    def acquire(self) -> Optional[sqlite3.Connection]:
        deadline = time.monotonic() + self.acquire_timeout
        with self._available:
            while True:
                self._check_open()
                if self._idle:
                    conn = self._idle.pop()
                    break
                if self._size() < self.max_conn:
                    conn = self._connect()
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"{self} exhausted: all {self.max_conn} connections in use")
                    return None
                self._available.wait(remaining)
            self._in_use.add(conn)
            return conn

    def release(self, conn: sqlite3.Connection) -> None:
        with self._available:
            if conn not in self._in_use:
                logger.error(f"{self} asked to release a connection it does not own")
                conn.close()
                return
            self._in_use.discard(conn)
            if self._closed:
                conn.close()
                return
            if conn.in_transaction:
                conn.rollback()
            self._idle.append(conn)
            self._available.notify()

    def shutdown(self) -> None:
        with self._available:
            if self._closed:
                return
            self._closed = True
            for conn in self._idle:
                conn.close()
            self._idle.clear()
            self._available.notify_all()
        logger.info(f"SQLite connection pool for {self.database} closed.")

    @property
    def in_use(self) -> int:
        """Number of connections currently borrowed."""
        with self._available:
            return len(self._in_use)

    def __repr__(self) -> str:
        return f"SQLitePool({self.database!r}, max_conn={self.max_conn})"
