"""
Oracle database connector for DB Connector Tester.

Uses python-oracledb through SQLAlchemy's ``oracle+oracledb`` dialect, in thin
mode by default (no Oracle Instant Client required).

The server field is the DSN: an EZConnect string ("dbhost:1521/ORCLPDB1") or a
TNS alias. The database field is not used by Oracle.

Integrated security means external (OS) authentication, which python-oracledb
only supports in thick mode. Enable it in db_config.yaml:

    oracle:
      thick_mode:
        lib_dir: /opt/oracle/instantclient_21_9
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List

from sqlalchemy.engine import URL

from .connector import DBConnector, Parameter


class OracleConnector(DBConnector):
    vendor = "oracle"
    ping_sql = "SELECT 1 FROM DUAL"
    supports_out_parameters = True

    def _build_connection_url(self) -> URL:
        p = self.params
        if p.integrated_security:
            return URL.create(drivername="oracle+oracledb")
        return URL.create(
            drivername="oracle+oracledb",
            username=p.username or None,
            password=p.password or None,
        )

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs = super()._engine_kwargs()
        if self.params is not None:
            connect_args: Dict[str, Any] = {
                "dsn": self.params.server,
                "tcp_connect_timeout": float(self.params.timeout),
            }
            if self.params.integrated_security:
                connect_args["externalauth"] = True
            kwargs["connect_args"] = connect_args
        thick_mode = self.config.get("oracle", {}).get("thick_mode")
        if thick_mode:
            kwargs["thick_mode"] = thick_mode
        return kwargs

    def _procedure_sql(self, name: str, parameters: List[Parameter]) -> str:
        args = ", ".join(f"{p.name} => :{p.name}" for p in parameters)
        return f"BEGIN {name}({args}); END;"

    def _iter_result_sets(self, cursor) -> Iterator[Any]:
        # Procedures hand back extra result sets through DBMS_SQL.RETURN_RESULT
        if cursor.description:
            yield cursor
        for implicit in cursor.getimplicitresults():
            try:
                yield implicit
            finally:
                implicit.close()


__all__ = ["OracleConnector"]
