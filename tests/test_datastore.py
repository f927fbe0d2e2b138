"""DataStore connect/close lifecycle tests, including schema creation on connect."""

import pytest
from sqlalchemy.exc import OperationalError

from taskflow import create_app
from taskflow.config import TestingConfig
from taskflow.datastore import DataStore, DataStoreUnavailable


def test_registered_on_app(app):
    assert isinstance(app.extensions["datastore"], DataStore)


def test_connect_pings(app):
    store = DataStore(app, retries=1)
    assert store.connect() is store
    assert store.connected


def test_retries_with_capped_backoff(app, monkeypatch):
    delays = []
    store = DataStore(app, retries=4, backoff=1, max_backoff=3, sleep=delays.append)
    calls = {"n": 0}

    def flaky_ping():
        calls["n"] += 1
        if calls["n"] < 4:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(store, "ping", flaky_ping)
    store.connect()
    assert calls["n"] == 4
    assert delays == [1, 2, 3]


def test_exhausted_retries_raise(app, monkeypatch):
    store = DataStore(app, retries=2, backoff=0, sleep=lambda _: None)

    def down():
        raise OperationalError("SELECT 1", {}, Exception("down"))

    monkeypatch.setattr(store, "ping", down)
    with pytest.raises(DataStoreUnavailable):
        store.connect()
    assert not store.connected


def test_close_without_app_is_noop():
    DataStore().close()


def test_schema_created_once_database_comes_up(tmp_path, monkeypatch):
    late_dir = tmp_path / "late"
    monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{late_dir / 'taskflow.db'}")
    late_app = create_app("testing")

    # The database directory only appears after the first failed attempt
    store = DataStore(late_app, retries=3, backoff=0, sleep=lambda _: late_dir.mkdir(exist_ok=True))
    try:
        store.connect()
        res = late_app.test_client().post("/api/auth/register", json={
            "name": "Late Starter", "email": "late@acme.io", "password": "hunter22",
        })
    finally:
        store.close()

    assert late_dir.is_dir()
    assert res.status_code == 201
    assert res.get_json()["data"]["user"]["email"] == "late@acme.io"
