import threading

import pytest

from core.errors import StatementError
from core.pg_manager import PostgresManager, QueryResult, oid_to_type_name, to_pyformat


def test_placeholders_become_pyformat_in_order():
    sql, args = to_pyformat('UPDATE "t" SET "a" = $1 WHERE "id" = $2', ["x", "7"])
    assert sql == 'UPDATE "t" SET "a" = %s WHERE "id" = %s'
    assert args == ["x", "7"]


def test_reused_and_reordered_placeholders():
    sql, args = to_pyformat("SELECT $2, $1, $2", ["a", "b"])
    assert sql == "SELECT %s, %s, %s"
    assert args == ["b", "a", "b"]


def test_literal_percent_and_quoted_dollar_are_left_alone():
    sql, args = to_pyformat("SELECT '$1 50%' WHERE x LIKE $1", ["a%"])
    assert sql == "SELECT '$1 50%%' WHERE x LIKE %s"
    assert args == ["a%"]


def test_quoted_identifier_with_dollar():
    sql, args = to_pyformat('SELECT "cost$1" FROM t WHERE id = $1', ["1"])
    assert sql == 'SELECT "cost$1" FROM t WHERE id = %s'
    assert args == ["1"]


def test_query_result_helpers():
    ok = QueryResult(True, "SELECT 1", columns=["?column?"], rows=[["1"]])
    assert ok.returns_rows
    assert ok.row_count == 1
    assert ok.raise_for_error() is ok
    assert ok.to_dict()["rows"] == [["1"]]

    failed = QueryResult(False, "DELETE FROM t", error='relation "t" does not exist')
    assert not failed.returns_rows
    with pytest.raises(StatementError) as excinfo:
        failed.raise_for_error()
    assert excinfo.value.sql == "DELETE FROM t"


def test_oid_names():
    assert oid_to_type_name(23) == "int4"
    assert oid_to_type_name(99999) == "oid:99999"


# ── Connection Sequencing ─────────────────────────────────────

class _RecordingCursor:
    def __init__(self, connection):
        self._connection = connection
        self.description = None
        self.rowcount = 1

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, args=None):
        self._connection.log.append((sql, self._connection.autocommit))


class _RecordingConnection:
    """Records every statement with the autocommit state it ran under."""

    def __init__(self):
        self.autocommit = True
        self.closed = False
        self.log = []

    def cursor(self):
        return _RecordingCursor(self)

    def commit(self):
        self.log.append(("COMMIT", self.autocommit))

    def rollback(self):
        self.log.append(("ROLLBACK", self.autocommit))


@pytest.fixture()
def manager():
    pm = PostgresManager()
    pm._connection = _RecordingConnection()
    return pm


def _query_in_thread(pm, sql, results):
    worker = threading.Thread(target=lambda: results.append(pm.execute_query(sql)))
    worker.start()
    return worker


def test_query_from_another_thread_waits_for_commit(manager):
    results = []
    with manager.transaction() as tx:
        tx.execute('DELETE FROM "t" WHERE "id" = $1', ["1"])
        worker = _query_in_thread(manager, "DELETE FROM other", results)
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert results == []

    worker.join(timeout=5)
    assert manager._connection.log == [
        ('DELETE FROM "t" WHERE "id" = %s', False),
        ("COMMIT", False),
        ("DELETE FROM other", True),
    ]
    assert results[0].success


def test_query_from_another_thread_runs_after_rollback(manager):
    results = []
    with pytest.raises(StatementError):
        with manager.transaction():
            worker = _query_in_thread(manager, "DELETE FROM other", results)
            worker.join(timeout=0.2)
            assert worker.is_alive()
            raise StatementError("duplicate key value violates unique constraint")

    worker.join(timeout=5)
    assert manager._connection.log == [("ROLLBACK", False), ("DELETE FROM other", True)]
    assert results[0].success
