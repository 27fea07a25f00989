import os

import pytest
from sqlalchemy.engine import URL

from dbtester.connector import ConnectionParams, DBConnector, load_config


class SqliteConnector(DBConnector):
    """File-backed SQLite stand-in for a vendor connector."""

    vendor = "sqlite"

    def _build_connection_url(self) -> URL:
        return URL.create(drivername="sqlite", database=self.params.server)


@pytest.fixture
def config(tmp_path):
    cfg = load_config(str(tmp_path / "missing.yaml"), override_path=str(tmp_path / "missing.local.yaml"))
    cfg["paths"]["logs_dir"] = str(tmp_path / "logs")
    return cfg


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "movies.db")


@pytest.fixture
def make_connector(config, db_path):
    def _make(server=None, **kwargs):
        params = ConnectionParams(server=server or db_path, **kwargs)
        return SqliteConnector(params, config=config)
    return _make


@pytest.fixture
def movies(make_connector):
    conn = make_connector()
    conn.execute_non_query("CREATE TABLE movies (id INTEGER PRIMARY KEY, title TEXT, year INTEGER)")
    conn.execute_non_query(
        "INSERT INTO movies (title, year) VALUES ('Alien', 1979), ('Heat', 1995), ('Arrival', 2016)"
    )
    assert conn.error_list == []
    conn.dispose()
    return make_connector


@pytest.fixture
def unreachable_path(tmp_path):
    return os.path.join(str(tmp_path), "no_such_dir", "movies.db")


@pytest.fixture
def sqlite_factory(config):
    def _factory(vendor, params):
        return SqliteConnector(params, config=config)
    return _factory


@pytest.fixture
def connector_class():
    return SqliteConnector
