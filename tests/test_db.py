from contextlib import contextmanager

import psycopg
import pytest

import db
from errors import InvalidRequest, StorageFailure
from models import Category, DataType


class StubPool:
    def __init__(self, conn=None, error=None):
        self.conn = conn
        self.error = error
        self.closed = False

    @contextmanager
    def connection(self):
        if self.error is not None:
            raise self.error
        yield self.conn

    def close(self):
        self.closed = True


def test_schema_uses_shared_enumerations():
    for dt in DataType:
        assert f"'{dt.value}'" in db.SCHEMA_DDL
    for category in Category:
        assert f"'{category.value}'" in db.SCHEMA_DDL
    assert "user_name_unique ON field_types (user_id, name)" in db.SCHEMA_DDL
    assert "ON DELETE CASCADE" in db.SCHEMA_DDL


def test_get_conn_wraps_driver_errors(monkeypatch):
    monkeypatch.setattr(db, "get_pool", lambda: StubPool(error=psycopg.OperationalError("timeout")))

    with pytest.raises(StorageFailure):
        with db.get_conn():
            pass


def test_get_conn_wraps_errors_raised_in_block(monkeypatch):
    monkeypatch.setattr(db, "get_pool", lambda: StubPool(conn=object()))

    with pytest.raises(StorageFailure):
        with db.get_conn():
            raise psycopg.errors.SerializationFailure("could not serialize")


def test_get_conn_lets_domain_errors_through(monkeypatch):
    sentinel = object()
    monkeypatch.setattr(db, "get_pool", lambda: StubPool(conn=sentinel))

    with pytest.raises(InvalidRequest):
        with db.get_conn() as conn:
            assert conn is sentinel
            raise InvalidRequest("nope")


def test_pool_is_opened_once_and_closed(monkeypatch):
    created = []

    def fake_pool(conninfo, **kwargs):
        pool = StubPool()
        created.append((conninfo, kwargs, pool))
        return pool

    monkeypatch.setattr(db, "_pool", None)
    monkeypatch.setattr(db, "ConnectionPool", fake_pool)

    first = db.get_pool()
    second = db.get_pool()

    assert first is second
    assert len(created) == 1
    assert created[0][0] == db.settings.db_url
    assert created[0][1]["kwargs"] == {"connect_timeout": db.settings.db_connect_timeout}

    db.close_pool()
    assert first.closed
    assert db._pool is None
