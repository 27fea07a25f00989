"""
Database connector base for DB Connector Tester.

Responsibilities:
- Load DB config from YAML (with a local override file)
- Build a SQLAlchemy engine for the vendor driver (one engine per connector, no pooling)
- Run exactly one open/execute/close cycle per operation
- Load results into pandas DataFrames
- Collect failures as ErrorRecord objects instead of raising
- Centralized logging

Vendor subclasses live in ``sqlserver_connector`` and ``oracle_connector``.

Usage:
    from dbtester.connector import ConnectionParams
    from dbtester.registry import get_connector

    params = ConnectionParams(server="localhost\\SQLEXPRESS", database="MovieCatalogue",
                              integrated_security=True)
    with get_connector("mssql", params) as conn:
        if conn.can_connect():
            df = conn.get_table("SELECT * FROM Movies").value
"""

from __future__ import annotations

import enum
import logging
import os
import sys
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd
import yaml
from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.elements import TextClause


DEFAULT_CONFIG_PATH = os.path.join("config", "db_config.yaml")
LOCAL_OVERRIDE_PATH = os.path.join("config", "db_config.local.yaml")
DEFAULT_TIMEOUT = 40

# Routine names reported in error records
CAN_CONNECT = "CanConnect"
EXECUTE_NON_QUERY = "ExecuteNonQuery"
EXECUTE_SCALAR = "ExecuteScalar"
GET_TABLE = "GetTable"
GET_DATASET = "GetDataSet"


def _ensure_dirs(paths: List[str]) -> None:
    for p in paths:
        if p and not os.path.exists(p):
            os.makedirs(p, exist_ok=True)


def _setup_logger(logs_dir: str) -> logging.Logger:
    _ensure_dirs([logs_dir])
    logger = logging.getLogger("dbtester")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    log_path = os.path.join(logs_dir, "app.log")
    file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=3)
    file_fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_fmt)
    logger.addHandler(file_handler)

    # Console handler for development
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(file_fmt)
    logger.addHandler(console)

    logger.debug("Logger initialized for DB Connector Tester")
    return logger


def _load_yaml(path: str) -> Dict[str, Any]:
    if not path or not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = None, override_path: str = LOCAL_OVERRIDE_PATH) -> Dict[str, Any]:
    """Load the YAML config, deep-merged with the local override (override wins)."""
    merged = _deep_merge(_load_yaml(path or DEFAULT_CONFIG_PATH), _load_yaml(override_path))
    merged.setdefault("connector", {}).setdefault("vendor", "mssql")
    merged.setdefault("connector", {}).setdefault("timeout", DEFAULT_TIMEOUT)
    merged.setdefault("mssql", {}).setdefault("driver", "ODBC Driver 17 for SQL Server")
    merged.setdefault("oracle", {}).setdefault("thick_mode", None)
    merged.setdefault("sqlalchemy", {}).setdefault("echo", False)
    merged.setdefault("paths", {}).setdefault("logs_dir", "logs")
    merged.setdefault("form", {})
    return merged


class CommandType(enum.Enum):
    """How the command text is interpreted."""

    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"
    TABLE_DIRECT = "table_direct"


class ParameterDirection(enum.Enum):
    INPUT = "input"
    OUTPUT = "output"
    INPUT_OUTPUT = "input_output"
    RETURN_VALUE = "return_value"


@dataclass
class ConnectionParams:
    """Values collected from the form for a single action."""

    server: str
    database: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    persist_security_info: bool = False
    integrated_security: bool = False
    timeout: int = DEFAULT_TIMEOUT


@dataclass
class Parameter:
    """A named bind parameter attached to every subsequent execute call.

    ``vendor_type`` is a dialect specific SQLAlchemy type (e.g. ``mssql.NVARCHAR``,
    ``oracle.NUMBER``) and wins over the generic ``type`` when both are given.
    """

    name: str
    value: Any = None
    type: Any = None
    vendor_type: Any = None
    direction: ParameterDirection = ParameterDirection.INPUT

    def __post_init__(self) -> None:
        self.name = normalize_parameter_name(self.name)

    @property
    def is_output(self) -> bool:
        return self.direction is not ParameterDirection.INPUT

    def to_bindparam(self):
        return bindparam(
            self.name,
            value=None if self.direction in (ParameterDirection.OUTPUT, ParameterDirection.RETURN_VALUE) else self.value,
            type_=self.vendor_type or self.type,
            isoutparam=self.is_output,
        )


def normalize_parameter_name(name: str) -> str:
    return name.strip().lstrip("@:")


@dataclass(frozen=True)
class ErrorRecord:
    source: str
    message: str
    routine_name: str

    @classmethod
    def from_exception(cls, exc: BaseException, routine_name: str) -> "ErrorRecord":
        # Report the driver's own exception, not SQLAlchemy's wrapper
        if isinstance(exc, DBAPIError) and exc.orig is not None:
            exc = exc.orig
        message = str(exc).strip() or type(exc).__name__
        return cls(source=type(exc).__module__, message=message, routine_name=routine_name)

    def __str__(self) -> str:
        return f"{self.message} {self.routine_name}"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one connector operation.

    ``value`` holds the operation's empty default when ``error`` is set, so callers
    that only look at the value keep working.
    """

    operation: str
    value: Any = None
    error: Optional[ErrorRecord] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok


class DBConnector:
    """Vendor independent connection helper.

    Subclasses provide ``vendor``, ``_build_connection_url`` and whatever driver
    specifics differ (engine kwargs, ping query, procedure call syntax,
    multi-result-set iteration, out parameters).
    """

    vendor = "generic"
    ping_sql = "SELECT 1"
    supports_out_parameters = False

    def __init__(
        self,
        params: Optional[ConnectionParams] = None,
        config_path: Optional[str] = None,
        url: Optional[Union[str, URL]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        if params is None and url is None:
            raise ValueError("Either connection params or a connection url is required")
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.config = config if config is not None else load_config(self.config_path)
        self.logger = _setup_logger(self.config["paths"]["logs_dir"])
        self.params = params
        self._url = make_url(url) if url is not None else None
        self.parameters: List[Parameter] = []
        self.error_list: List[ErrorRecord] = []
        self.engine: Optional[Engine] = None
        self.disposed = False

    # ---------------------- Connection string & Engine ----------------------
    def _build_connection_url(self) -> URL:
        raise NotImplementedError

    def _engine_kwargs(self) -> Dict[str, Any]:
        return {
            "poolclass": NullPool,
            "echo": self.config.get("sqlalchemy", {}).get("echo", False),
        }

    @property
    def url(self) -> URL:
        if self._url is None:
            self._url = self._build_connection_url()
        return self._url

    @property
    def connection_string(self) -> str:
        persist = self.params.persist_security_info if self.params is not None else False
        return self.url.render_as_string(hide_password=not persist)

    def get_engine(self, force_new: bool = False) -> Engine:
        if self.engine is not None and not force_new:
            return self.engine
        self.engine = create_engine(self.url, **self._engine_kwargs())
        self.logger.info("SQLAlchemy engine created for %s", self.url.render_as_string(hide_password=True))
        if self.params is not None and not self.params.persist_security_info:
            self.params = replace(self.params, password="")
        return self.engine

    # ---------------------- Parameters ----------------------
    def add_parameter(
        self,
        name: str,
        value: Any = None,
        type: Any = None,
        vendor_type: Any = None,
        direction: ParameterDirection = ParameterDirection.INPUT,
    ) -> Parameter:
        """Attach a parameter unless one with the same name is already present."""
        existing = self._find_parameter(name)
        if existing is not None:
            return existing
        parameter = Parameter(name=name, value=value, type=type, vendor_type=vendor_type, direction=direction)
        self.parameters.append(parameter)
        return parameter

    def add_parameters(self, parameters: Iterable[Parameter]) -> None:
        for parameter in parameters:
            if self._find_parameter(parameter.name) is None:
                self.parameters.append(parameter)

    def _find_parameter(self, name: str) -> Optional[Parameter]:
        key = normalize_parameter_name(name)
        for p in self.parameters:
            if p.name == key:
                return p
        return None

    def clear(self) -> None:
        """Empty the parameter list and the error list."""
        self.parameters.clear()
        self.error_list.clear()

    # ---------------------- Statements ----------------------
    def _procedure_sql(self, name: str, parameters: List[Parameter]) -> str:
        raise NotImplementedError(f"Stored procedures are not supported for {self.vendor}")

    def _build_statement(self, command: str, command_type: CommandType) -> TextClause:
        if command_type is CommandType.STORED_PROCEDURE:
            sql = self._procedure_sql(command.strip(), self.parameters)
        elif command_type is CommandType.TABLE_DIRECT:
            sql = f"SELECT * FROM {command.strip()}"
        else:
            sql = command
        stmt = text(sql)
        if self.parameters:
            if not self.supports_out_parameters and any(p.is_output for p in self.parameters):
                raise ValueError(f"Output parameters are not supported for {self.vendor}")
            stmt = stmt.bindparams(*[p.to_bindparam() for p in self.parameters])
        return stmt

    def _collect_out_parameters(self, result) -> None:
        outputs = [p for p in self.parameters if p.is_output]
        if not outputs:
            return
        values = getattr(result, "out_parameters", None) or {}
        for p in outputs:
            p.value = values.get(p.name)

    def _driver_call(self, conn: Connection, stmt: TextClause):
        """Compile ``stmt`` for the dialect and return (sql, args) for a raw DBAPI cursor.

        Values go through each bind type's processor, as they would for ``conn.execute``.
        """
        dialect = conn.dialect
        compiled = stmt.compile(dialect=dialect)
        params = compiled.construct_params()
        for name, bind in compiled.binds.items():
            processor = bind.type.dialect_impl(dialect).bind_processor(dialect)
            if processor is not None and name in params:
                params[name] = processor(params[name])
        if compiled.positional:
            return str(compiled), [params[name] for name in compiled.positiontup]
        return str(compiled), params

    def _iter_result_sets(self, cursor) -> Iterator[Any]:
        yield cursor
        nextset = getattr(cursor, "nextset", None)
        while nextset is not None and nextset():
            yield cursor

    @staticmethod
    def _frame_from_cursor(cursor) -> pd.DataFrame:
        columns = [d[0] for d in cursor.description]
        return pd.DataFrame.from_records(cursor.fetchall(), columns=columns)

    def _record_error(self, exc: Exception, routine_name: str) -> ErrorRecord:
        error = ErrorRecord.from_exception(exc, routine_name)
        self.error_list.append(error)
        self.logger.error("%s failed [%s]: %s", routine_name, error.source, error.message)
        return error

    # ---------------------- Operations ----------------------
    def can_connect(self) -> OperationResult:
        try:
            engine = self.get_engine()
            with engine.connect() as conn:
                conn.execute(text(self.ping_sql))
                connected = not conn.closed
            self.logger.info("Connection test %s", "succeeded" if connected else "failed")
            return OperationResult(CAN_CONNECT, connected)
        except Exception as e:
            return OperationResult(CAN_CONNECT, False, self._record_error(e, CAN_CONNECT))

    def execute_non_query(self, command: str, command_type: CommandType = CommandType.TEXT) -> OperationResult:
        """Execute a command and return the number of rows affected.

        Drivers report -1 when a row count does not apply (DDL, SELECT); that is
        returned as 0.
        """
        try:
            stmt = self._build_statement(command, command_type)
            with self.get_engine().begin() as conn:
                result = conn.execute(stmt)
                rows = max(result.rowcount or 0, 0)
                self._collect_out_parameters(result)
            self.logger.info("%s affected %d rows", EXECUTE_NON_QUERY, rows)
            return OperationResult(EXECUTE_NON_QUERY, rows)
        except Exception as e:
            return OperationResult(EXECUTE_NON_QUERY, 0, self._record_error(e, EXECUTE_NON_QUERY))

    def execute_scalar(self, command: str, command_type: CommandType = CommandType.TEXT) -> OperationResult:
        """Return the first column of the first row; additional rows and columns are ignored."""
        try:
            stmt = self._build_statement(command, command_type)
            with self.get_engine().begin() as conn:
                result = conn.execute(stmt)
                value = result.scalar() if result.returns_rows else None
                self._collect_out_parameters(result)
            return OperationResult(EXECUTE_SCALAR, value)
        except Exception as e:
            return OperationResult(EXECUTE_SCALAR, None, self._record_error(e, EXECUTE_SCALAR))

    def get_table(self, command: str, command_type: CommandType = CommandType.TEXT) -> OperationResult:
        """Load the rows returned by the command into a DataFrame."""
        try:
            stmt = self._build_statement(command, command_type)
            with self.get_engine().begin() as conn:
                result = conn.execute(stmt)
                # Statements and procedures without a result set load as an empty table
                if result.returns_rows:
                    df = pd.DataFrame.from_records(
                        [tuple(row) for row in result.fetchall()], columns=list(result.keys())
                    )
                else:
                    df = pd.DataFrame()
                self._collect_out_parameters(result)
            self.logger.info("Query returned %d rows", len(df))
            return OperationResult(GET_TABLE, df)
        except Exception as e:
            return OperationResult(GET_TABLE, pd.DataFrame(), self._record_error(e, GET_TABLE))

    def get_dataset(self, command: str, command_type: CommandType = CommandType.TEXT) -> OperationResult:
        """Load every row-returning result set of the command, one DataFrame each."""
        try:
            stmt = self._build_statement(command, command_type)
            tables: List[pd.DataFrame] = []
            with self.get_engine().begin() as conn:
                sql, args = self._driver_call(conn, stmt)
                cursor = conn.connection.cursor()
                try:
                    cursor.execute(sql, args)
                    result_sets = self._iter_result_sets(cursor)
                    try:
                        for result_set in result_sets:
                            # Result sets without a description are row counts
                            if result_set.description:
                                tables.append(self._frame_from_cursor(result_set))
                    finally:
                        result_sets.close()
                finally:
                    cursor.close()
            self.logger.info("Query returned %d result sets", len(tables))
            return OperationResult(GET_DATASET, tables)
        except Exception as e:
            return OperationResult(GET_DATASET, [], self._record_error(e, GET_DATASET))

    # ---------------------- Utility ----------------------
    def dispose(self) -> None:
        if self.disposed:
            return
        self.clear()
        if self.engine is not None:
            self.engine.dispose()
            self.logger.info("Disposed SQLAlchemy engine")
        self.engine = None
        self.params = None
        self.disposed = True

    def __enter__(self) -> "DBConnector":
        return self

    def __exit__(self, *args) -> None:
        self.dispose()


__all__ = [
    "CAN_CONNECT",
    "EXECUTE_NON_QUERY",
    "EXECUTE_SCALAR",
    "GET_TABLE",
    "GET_DATASET",
    "CommandType",
    "ConnectionParams",
    "DBConnector",
    "ErrorRecord",
    "OperationResult",
    "Parameter",
    "ParameterDirection",
    "load_config",
]
