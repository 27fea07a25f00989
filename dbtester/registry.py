from __future__ import annotations

from typing import Dict, Optional, Type

from .connector import ConnectionParams, DBConnector
from .oracle_connector import OracleConnector
from .sqlserver_connector import SqlServerConnector


CONNECTORS: Dict[str, Type[DBConnector]] = {
    "mssql": SqlServerConnector,
    "oracle": OracleConnector,
}

VENDOR_LABELS = {
    "mssql": "SQL Server",
    "oracle": "Oracle",
}


def get_connector(vendor: str, params: ConnectionParams, config_path: Optional[str] = None) -> DBConnector:
    connector_class = CONNECTORS.get((vendor or "").lower())
    if connector_class is None:
        raise ValueError(f"Unsupported database vendor: {vendor}")
    return connector_class(params, config_path=config_path)


__all__ = ["CONNECTORS", "VENDOR_LABELS", "get_connector"]
