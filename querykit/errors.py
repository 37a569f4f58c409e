"""
querykit/errors.py
------------------
Exceptions raised by querykit itself. Driver errors (sqlite3.Error,
psycopg2.Error) are never wrapped; they reach the caller unchanged.
"""


class QueryKitError(Exception):
    """Base class for all querykit errors."""


class NullConnectionError(QueryKitError):
    """The pool could not supply a usable connection."""


class PoolClosedError(QueryKitError):
    """A connection was requested from a pool that has been shut down."""


class UnsupportedKeyRetrievalError(QueryKitError):
    """The dialect cannot return generated keys in the requested form."""
