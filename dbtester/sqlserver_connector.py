"""
SQL Server connector for DB Connector Tester.

Uses SQLAlchemy's ``mssql+pyodbc`` dialect, so an ODBC driver for SQL Server
must be installed (default: "ODBC Driver 17 for SQL Server", configurable
under ``mssql.driver`` in db_config.yaml).

Named instances work as-is, e.g. ``server="Win10PC\\SQL2014EXPRESS"``.
Integrated security sends no UID/PWD and asks for a trusted connection.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.engine import URL

from .connector import DBConnector, Parameter


class SqlServerConnector(DBConnector):
    vendor = "mssql"
    ping_sql = "SELECT 1"

    def _build_connection_url(self) -> URL:
        p = self.params
        query = {"driver": self.config.get("mssql", {}).get("driver", "ODBC Driver 17 for SQL Server")}
        if p.integrated_security:
            query["Trusted_Connection"] = "yes"
            username = password = None
        else:
            username = p.username or None
            password = p.password or None
        return URL.create(
            drivername="mssql+pyodbc",
            username=username,
            password=password,
            host=p.server,
            database=p.database or None,
            query=query,
        )

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs = super()._engine_kwargs()
        if self.params is not None:
            # pyodbc login timeout, in seconds
            kwargs["connect_args"] = {"timeout": int(self.params.timeout)}
        return kwargs

    def _procedure_sql(self, name: str, parameters: List[Parameter]) -> str:
        args = ", ".join(f"@{p.name} = :{p.name}" for p in parameters)
        return f"EXEC {name} {args}".rstrip()


__all__ = ["SqlServerConnector"]
