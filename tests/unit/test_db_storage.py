"""
Unit tests for DBStorage without a live database.

The connection pool is replaced by a dummy whose connections hand out
scripted cursors, so these tests check row mapping, rowcount handling and
error translation rather than SQL semantics.
"""

from datetime import datetime, timezone

import psycopg
import psycopg.errors
import pytest

import vlink.storage.db_storage as db_storage
from vlink.errors import StoreUnavailableError
from vlink.storage.base import LinkRecord, VisitRecord
from vlink.storage.db_storage import DBStorage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class DummyCursor:
    def __init__(self, results=None, rowcount=1, error=None):
        # results is a list of dicts or tuples
        self._results = list(results or [])
        self.rowcount = rowcount
        self.error = error
        self.queries = []

    def execute(self, query, params=None):
        if self.error is not None:
            raise self.error
        self.queries.append((query, params))

    def fetchone(self):
        return self._results.pop(0) if self._results else None

    def fetchall(self):
        rows, self._results = self._results, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class DummyConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.row_factories = []
        self.executed = []

    def cursor(self, row_factory=None):
        self.row_factories.append(row_factory)
        return self._cursor

    def execute(self, query, params=None):
        self.executed.append(query)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class DummyPool:
    def __init__(self, connection=None, error=None):
        self._connection = connection
        self.error = error
        self.closed = False

    def connection(self):
        if self.error is not None:
            raise self.error
        return self._connection

    def close(self):
        self.closed = True


def _storage(monkeypatch, results=None, rowcount=1, error=None):
    cursor = DummyCursor(results=results, rowcount=rowcount, error=error)
    conn = DummyConnection(cursor)
    storage = DBStorage("postgresql://fake")
    monkeypatch.setattr(storage, "_get_pool", lambda: DummyPool(conn))
    return storage, conn, cursor


def _row(**overrides):
    row = {
        "code": "abc",
        "destination": "https://x.com",
        "created_at": T0,
        "visit_count": 0,
        "last_accessed_at": None,
        "is_custom": False,
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------

def test_insert_link(monkeypatch):
    storage, _, cursor = _storage(monkeypatch, rowcount=1)
    record = LinkRecord(code="abc", destination="https://x.com", created_at=T0, is_custom=True)
    assert storage.insert_link(record) is True
    query, params = cursor.queries[0]
    assert "ON CONFLICT (code) DO NOTHING" in query
    assert params == ("abc", "https://x.com", T0, 0, True)

    # Conflict (rowcount=0)
    storage, _, _ = _storage(monkeypatch, rowcount=0)
    assert storage.insert_link(record) is False


def test_get_link_maps_row(monkeypatch):
    storage, conn, _ = _storage(monkeypatch, results=[_row(visit_count=3, is_custom=True)])
    record = storage.get_link("abc")
    assert record == LinkRecord(
        code="abc", destination="https://x.com", created_at=T0, visit_count=3, is_custom=True
    )
    assert conn.row_factories == [psycopg.rows.dict_row]


def test_get_link_missing(monkeypatch):
    storage, _, _ = _storage(monkeypatch, results=[])
    assert storage.get_link("nope") is None


def test_find_code_by_url(monkeypatch):
    # default cursor → tuple rows
    storage, _, cursor = _storage(monkeypatch, results=[("abc",)])
    assert storage.find_code_by_url("https://x.com") == "abc"
    assert "ORDER BY created_at" in cursor.queries[0][0]

    storage, _, _ = _storage(monkeypatch, results=[])
    assert storage.find_code_by_url("https://x.com") is None


def test_record_visit_returns_updated_row(monkeypatch):
    storage, _, cursor = _storage(monkeypatch, results=[_row(visit_count=1, last_accessed_at=T0)])
    record = storage.record_visit("abc", T0)
    assert record.visit_count == 1
    assert record.last_accessed_at == T0
    query, params = cursor.queries[0]
    assert "visit_count = visit_count + 1" in query
    assert "RETURNING" in query
    assert params == (T0, "abc")


def test_record_visit_unknown(monkeypatch):
    storage, _, _ = _storage(monkeypatch, results=[])
    assert storage.record_visit("nope", T0) is None


def test_append_visit(monkeypatch):
    storage, _, cursor = _storage(monkeypatch)
    storage.append_visit(VisitRecord(link_code="abc", visited_at=T0, user_agent="ua", ip_address="1.2.3.4"))
    query, params = cursor.queries[0]
    assert "FROM links WHERE code = %s" in query
    assert params == (T0, "ua", "1.2.3.4", None, "abc")


def test_list_visits(monkeypatch):
    rows = [
        {"link_code": "abc", "visited_at": T0, "user_agent": "ua", "ip_address": None, "referrer": None},
        {"link_code": "abc", "visited_at": T0, "user_agent": None, "ip_address": "::1", "referrer": "r"},
    ]
    storage, _, _ = _storage(monkeypatch, results=rows)
    visits = storage.list_visits("abc")
    assert [v.user_agent for v in visits] == ["ua", None]
    assert visits[1].referrer == "r"


def test_delete_link(monkeypatch):
    storage, _, _ = _storage(monkeypatch, rowcount=1)
    assert storage.delete_link("abc") is True

    storage, _, _ = _storage(monkeypatch, rowcount=0)
    assert storage.delete_link("abc") is False


def test_ensure_schema_runs_ddl(monkeypatch):
    storage, conn, _ = _storage(monkeypatch)
    storage.ensure_schema()
    assert len(conn.executed) == 1
    assert "CREATE TABLE IF NOT EXISTS links" in conn.executed[0]


def test_pool_unavailable_raises_store_error(monkeypatch):
    storage = DBStorage("postgresql://fake")
    pool = DummyPool(error=psycopg.OperationalError("connection refused"))
    monkeypatch.setattr(storage, "_get_pool", lambda: pool)
    with pytest.raises(StoreUnavailableError):
        storage.get_link("abc")


def test_query_operational_error_raises_store_error(monkeypatch):
    storage, _, _ = _storage(monkeypatch, error=psycopg.OperationalError("server closed the connection"))
    with pytest.raises(StoreUnavailableError):
        storage.record_visit("abc", T0)


@pytest.mark.parametrize("error", [
    psycopg.InterfaceError("the connection is closed"),
    psycopg.errors.UndefinedTable('relation "links" does not exist'),
])
def test_any_driver_error_raises_store_error(monkeypatch, error):
    storage, _, _ = _storage(monkeypatch, error=error)
    with pytest.raises(StoreUnavailableError) as info:
        storage.get_link("abc")
    assert info.value.__cause__ is error


def test_pool_opened_lazily_once_and_closed(monkeypatch):
    created = []

    class FakePool(DummyPool):
        def __init__(self, dsn, **kwargs):
            super().__init__()
            self.dsn = dsn
            self.kwargs = kwargs
            self.opened = False
            created.append(self)

        def open(self):
            self.opened = True

    monkeypatch.setattr(db_storage, "ConnectionPool", FakePool)
    storage = DBStorage("postgresql://fake", min_size=2, max_size=5)
    assert created == []

    pool = storage._get_pool()
    assert storage._get_pool() is pool
    assert len(created) == 1
    assert pool.opened
    assert pool.kwargs["min_size"] == 2
    assert pool.kwargs["max_size"] == 5
    assert pool.kwargs["kwargs"] == {"autocommit": True}

    storage.close()
    assert pool.closed
    storage.close()  # second close is a no-op
