"""
Form controller for DB Connector Tester.

Holds the field values shown by the Streamlit page (or passed on the command
line) and turns one button press into one connector call. Knows nothing
about the UI toolkit.
"""
from __future__ import annotations

import enum
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from .connector import (
    DEFAULT_CONFIG_PATH,
    ConnectionParams,
    DBConnector,
    ErrorRecord,
    _setup_logger,
    load_config,
)
from .registry import get_connector


CONNECT_SUCCESS = "Connection successful!"
PERSIST_CHOICES = ["true", "false"]


class CommandKind(enum.Enum):
    """What the caller says the query text is.

    AUTO runs it as a statement first and, when no rows were affected, runs it
    again as a row-returning query.
    """

    AUTO = "auto"
    STATEMENT = "statement"
    QUERY = "query"


def format_errors(errors: List[ErrorRecord]) -> str:
    return "\n".join(str(e) for e in errors)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "true"


ConnectorFactory = Callable[[str, ConnectionParams], DBConnector]


class FormController:
    """State and actions behind the tester form."""

    def __init__(
        self,
        vendor: Optional[str] = None,
        config_path: Optional[str] = None,
        connector_factory: Optional[ConnectorFactory] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.config = load_config(self.config_path)
        self.logger = _setup_logger(self.config["paths"]["logs_dir"])
        self.vendor = vendor or self.config["connector"]["vendor"]
        self.connector_factory = connector_factory or (
            lambda v, p: get_connector(v, p, config_path=self.config_path)
        )

        defaults: Dict[str, Any] = self.config.get("form", {})
        self.server: str = defaults.get("server", "") or ""
        self.database: str = defaults.get("database", "") or ""
        self.username: str = ""
        self.password: str = ""
        self.persist: str = str(defaults.get("persist", "false")).lower()
        self.integrated_security = False
        self.username_enabled = True
        self.password_enabled = True
        self.query: str = ""
        self.status: str = ""
        self.last_table: Optional[pd.DataFrame] = None

    def set_integrated_security(self, checked: bool) -> None:
        self.integrated_security = bool(checked)
        self.username_enabled = not self.integrated_security
        self.password_enabled = not self.integrated_security
        if self.integrated_security:
            self.username = ""
            self.password = ""

    def build_params(self) -> ConnectionParams:
        return ConnectionParams(
            server=self.server.strip(),
            database=self.database.strip(),
            username=self.username,
            password=self.password,
            persist_security_info=_to_bool(self.persist),
            integrated_security=self.integrated_security,
            timeout=int(self.config["connector"]["timeout"]),
        )

    def _new_connector(self) -> DBConnector:
        return self.connector_factory(self.vendor, self.build_params())

    def connect(self) -> str:
        with self._new_connector() as conn:
            result = conn.can_connect()
            if result.ok and result.value:
                self.status = CONNECT_SUCCESS
            else:
                self.status = format_errors(conn.error_list)
        self.logger.info("Connect action on %s: %s", self.vendor, "ok" if self.status == CONNECT_SUCCESS else "failed")
        return self.status

    def execute(self, kind: CommandKind = CommandKind.AUTO) -> str:
        """Run the query text; leaves the status untouched when the text is blank."""
        if not self.query.strip():
            return self.status

        self.last_table = None
        with self._new_connector() as conn:
            if kind is CommandKind.QUERY:
                message = self._run_query(conn)
            else:
                rows = conn.execute_non_query(self.query).value
                if rows <= 0 and kind is CommandKind.AUTO:
                    conn.clear()
                    message = self._run_query(conn)
                else:
                    message = f"{rows} rows were affected."
            lines = [message] + [str(e) for e in conn.error_list]
        self.status = "\n".join(lines)
        return self.status

    def _run_query(self, conn: DBConnector) -> str:
        table = conn.get_table(self.query).value
        self.last_table = table
        return f"{len(table)} tables were affected."


__all__ = ["CONNECT_SUCCESS", "PERSIST_CHOICES", "CommandKind", "FormController", "format_errors"]
