import pandas as pd
import pytest

from dbtester.connector import ErrorRecord, OperationResult
from dbtester.form import CONNECT_SUCCESS, CommandKind, FormController


class DummyConnector:
    def __init__(self, params, rows=0, table=None, fail=None):
        self.params = params
        self.rows = rows
        self.table = table if table is not None else pd.DataFrame()
        self.fail = fail or set()
        self.error_list = []
        self.calls = []
        self.disposed = False

    def _error(self, routine):
        err = ErrorRecord("pyodbc", "Login timeout expired", routine)
        self.error_list.append(err)
        return err

    def can_connect(self):
        self.calls.append("can_connect")
        if "CanConnect" in self.fail:
            return OperationResult("CanConnect", False, self._error("CanConnect"))
        return OperationResult("CanConnect", True)

    def execute_non_query(self, command):
        self.calls.append("execute_non_query")
        if "ExecuteNonQuery" in self.fail:
            return OperationResult("ExecuteNonQuery", 0, self._error("ExecuteNonQuery"))
        return OperationResult("ExecuteNonQuery", self.rows)

    def get_table(self, command):
        self.calls.append("get_table")
        if "GetTable" in self.fail:
            return OperationResult("GetTable", pd.DataFrame(), self._error("GetTable"))
        return OperationResult("GetTable", self.table)

    def clear(self):
        self.calls.append("clear")
        self.error_list.clear()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disposed = True


@pytest.fixture
def make_form(tmp_path):
    created = []

    def _make(**connector_kwargs):
        def factory(vendor, params):
            c = DummyConnector(params, **connector_kwargs)
            created.append((vendor, c))
            return c
        form = FormController(vendor="mssql", config_path=str(tmp_path / "db_config.yaml"), connector_factory=factory)
        form.server = "Win10PC\\SQL2014EXPRESS"
        form.database = "MovieCatalogue"
        form.username = "sa"
        form.password = "pw"
        return form, created

    return _make


def test_integrated_security_toggle(make_form):
    form, _ = make_form()
    form.set_integrated_security(True)
    assert form.username == "" and form.password == ""
    assert not form.username_enabled and not form.password_enabled

    form.set_integrated_security(False)
    assert form.username_enabled and form.password_enabled
    assert form.integrated_security is False


def test_build_params(make_form):
    form, _ = make_form()
    form.persist = "True"
    params = form.build_params()
    assert params.server == "Win10PC\\SQL2014EXPRESS"
    assert params.persist_security_info is True
    assert params.integrated_security is False
    assert params.timeout == 40

    form.persist = None
    assert form.build_params().persist_security_info is False


def test_connect_success(make_form):
    form, created = make_form()
    assert form.connect() == "Connection successful!"
    assert form.status == CONNECT_SUCCESS
    vendor, conn = created[0]
    assert vendor == "mssql"
    assert conn.disposed


def test_connect_failure_lists_errors(make_form):
    form, _ = make_form(fail={"CanConnect"})
    assert form.connect() == "Login timeout expired CanConnect"


def test_each_action_builds_a_new_connector(make_form):
    form, created = make_form()
    form.connect()
    form.set_integrated_security(True)
    form.connect()
    assert len(created) == 2
    assert created[1][1].params.integrated_security is True
    assert created[1][1].params.username == ""


def test_execute_blank_query_is_ignored(make_form):
    form, created = make_form()
    form.status = "previous"
    form.query = "   "
    assert form.execute() == "previous"
    assert created == []


def test_execute_auto_with_affected_rows(make_form):
    form, created = make_form(rows=4)
    form.query = "UPDATE Movies SET Rating = 5"
    assert form.execute() == "4 rows were affected."
    assert created[0][1].calls == ["execute_non_query"]


def test_execute_auto_falls_back_to_query(make_form):
    table = pd.DataFrame({"Title": ["Alien", "Heat"]})
    form, created = make_form(rows=0, table=table)
    form.query = "SELECT Title FROM Movies"
    assert form.execute(CommandKind.AUTO) == "2 tables were affected."
    assert created[0][1].calls == ["execute_non_query", "clear", "get_table"]
    assert form.last_table is table


def test_execute_statement_kind_never_queries(make_form):
    form, created = make_form(rows=0)
    form.query = "DELETE FROM Movies WHERE 1 = 0"
    assert form.execute(CommandKind.STATEMENT) == "0 rows were affected."
    assert "get_table" not in created[0][1].calls


def test_execute_query_kind_appends_errors(make_form):
    form, created = make_form(fail={"GetTable"})
    form.query = "SELECT * FROM Nowhere"
    assert form.execute(CommandKind.QUERY) == "0 tables were affected.\nLogin timeout expired GetTable"
    assert created[0][1].calls == ["get_table"]


def test_form_against_sqlite(tmp_path, sqlite_factory, db_path):
    form = FormController(config_path=str(tmp_path / "db_config.yaml"), connector_factory=sqlite_factory)
    form.server = db_path
    assert form.connect() == CONNECT_SUCCESS

    form.query = "CREATE TABLE movies (title TEXT)"
    assert form.execute(CommandKind.STATEMENT) == "0 rows were affected."

    form.query = "INSERT INTO movies (title) VALUES ('Alien'), ('Heat')"
    assert form.execute() == "2 rows were affected."

    form.query = "SELECT title FROM movies ORDER BY title"
    assert form.execute() == "2 tables were affected."
    assert form.last_table["title"].tolist() == ["Alien", "Heat"]


def test_form_against_unreachable_sqlite(tmp_path, sqlite_factory, unreachable_path):
    form = FormController(config_path=str(tmp_path / "db_config.yaml"), connector_factory=sqlite_factory)
    form.server = unreachable_path
    status = form.connect()
    assert status == "unable to open database file CanConnect"


def test_auto_zero_row_statement_against_sqlite(tmp_path, sqlite_factory, db_path):
    form = FormController(config_path=str(tmp_path / "db_config.yaml"), connector_factory=sqlite_factory)
    form.server = db_path
    form.query = "CREATE TABLE movies (title TEXT)"
    form.execute(CommandKind.STATEMENT)

    form.query = "DELETE FROM movies WHERE 1 = 0"
    assert form.execute(CommandKind.AUTO) == "0 tables were affected."
    assert form.last_table.empty
