"""
Tests for RowCursor and the closeable iterators.
"""

import sqlite3
from unittest.mock import Mock

import pytest

from querykit.db.results import BatchIterator, ResultSetIterator, RowCursor


@pytest.fixture
def cursor():
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE people (id INTEGER, Name TEXT)")
    conn.executemany("INSERT INTO people VALUES (?, ?)", [(1, "ada"), (2, "grace")])
    cur = conn.cursor()
    cur.execute("SELECT id, Name FROM people ORDER BY id")
    yield cur
    conn.close()


def _rows(*values):
    """A RowCursor stand-in that advances through `values`."""
    rows = Mock()
    rows.advance.side_effect = [True] * len(values) + [False]
    return rows


class TestRowCursor:
    def test_access_by_index_and_name(self, cursor):
        rows = RowCursor(cursor)
        assert rows.advance()
        assert rows[0] == 1
        assert rows["name"] == "ada"
        assert rows["NAME"] == "ada"
        assert rows.columns == ["id", "Name"]

    def test_values_and_as_dict(self, cursor):
        rows = RowCursor(cursor)
        rows.advance()
        assert rows.values() == (1, "ada")
        assert rows.as_dict() == {"id": 1, "Name": "ada"}
        assert len(rows) == 2

    def test_unknown_column(self, cursor):
        rows = RowCursor(cursor)
        rows.advance()
        with pytest.raises(KeyError, match="missing"):
            rows["missing"]
        assert rows.get("missing", "n/a") == "n/a"

    def test_not_positioned(self, cursor):
        rows = RowCursor(cursor)
        with pytest.raises(LookupError):
            rows[0]

    def test_advance_to_end(self, cursor):
        rows = RowCursor(cursor)
        assert rows.advance()
        assert rows.advance()
        assert not rows.advance()

    def test_statement_without_result_set(self):
        conn = sqlite3.connect(":memory:")
        cur = conn.execute("CREATE TABLE x (id INTEGER)")
        assert RowCursor(cur).advance() is False
        assert RowCursor(cur).columns == []
        conn.close()


class TestResultSetIterator:
    def test_has_next_does_not_skip(self, cursor):
        statement = Mock()
        it = ResultSetIterator(statement, RowCursor(cursor), lambda r: r["id"])

        assert it.has_next()
        assert it.has_next()
        assert next(it) == 1
        assert next(it) == 2
        assert not it.has_next()

    def test_exhaustion_closes_once(self, cursor):
        statement = Mock()
        on_close = Mock()
        it = ResultSetIterator(statement, RowCursor(cursor), lambda r: r[0], on_close=on_close)

        assert list(it) == [1, 2]
        it.close()
        it.close()

        statement.close.assert_called_once_with()
        on_close.assert_called_once_with()
        assert not it.has_next()

    def test_explicit_close_is_idempotent(self, cursor):
        statement = Mock()
        on_close = Mock()
        it = ResultSetIterator(statement, RowCursor(cursor), lambda r: r[0], on_close=on_close)

        it.close()
        it.close()

        statement.close.assert_called_once_with()
        on_close.assert_called_once_with()
        with pytest.raises(StopIteration):
            next(it)

    def test_transform_error_closes_and_propagates(self, cursor):
        statement = Mock()
        on_close = Mock()

        def transform(row):
            raise RuntimeError("boom")

        it = ResultSetIterator(statement, RowCursor(cursor), transform, on_close=on_close)
        with pytest.raises(RuntimeError, match="boom"):
            next(it)

        assert it.closed
        statement.close.assert_called_once_with()
        on_close.assert_called_once_with()

    def test_advance_error_closes_and_propagates(self):
        rows = Mock()
        rows.advance.side_effect = sqlite3.OperationalError("disk I/O error")
        statement = Mock()
        on_close = Mock()

        it = ResultSetIterator(statement, rows, lambda r: r, on_close=on_close)
        with pytest.raises(sqlite3.OperationalError):
            next(it)

        statement.close.assert_called_once_with()
        on_close.assert_called_once_with()

    def test_cleanup_failure_does_not_mask_primary_error(self):
        statement = Mock()
        statement.close.side_effect = sqlite3.ProgrammingError("already closed")
        on_close = Mock()

        it = ResultSetIterator(statement, _rows(1), lambda r: 1 / 0, on_close=on_close)
        with pytest.raises(ZeroDivisionError):
            next(it)

        on_close.assert_called_once_with()

    def test_context_manager_closes(self, cursor):
        statement = Mock()
        with ResultSetIterator(statement, RowCursor(cursor), lambda r: r[0]) as it:
            assert next(it) == 1

        assert it.closed
        statement.close.assert_called_once_with()


class TestBatchIterator:
    def test_yields_counts_then_closes(self):
        statement = Mock()
        on_close = Mock()
        it = BatchIterator(statement, iter([1, 0, 2]), on_close=on_close)

        assert list(it) == [1, 0, 2]
        assert it.closed
        statement.close.assert_called_once_with()
        on_close.assert_called_once_with()

    def test_error_from_batch_closes(self):
        def counts():
            yield 1
            raise sqlite3.IntegrityError("UNIQUE constraint failed")

        statement = Mock()
        on_close = Mock()
        it = BatchIterator(statement, counts(), on_close=on_close)

        assert next(it) == 1
        with pytest.raises(sqlite3.IntegrityError):
            next(it)
        on_close.assert_called_once_with()

    def test_error_from_batch_is_reported_before_close(self):
        def counts():
            raise sqlite3.IntegrityError("NOT NULL constraint failed")
            yield

        events = []
        it = BatchIterator(
            Mock(),
            counts(),
            on_close=lambda: events.append("close"),
            on_error=lambda e: events.append(f"error: {e}"),
        )

        with pytest.raises(sqlite3.IntegrityError):
            it.has_next()
        assert events == ["error: NOT NULL constraint failed", "close"]
        assert not it.has_next()
        assert events == ["error: NOT NULL constraint failed", "close"]
