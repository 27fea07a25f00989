"""
DB Connector Tester command line

Usage:
  python main.py --mode connect --server "Win10PC\\SQL2014EXPRESS" --database MovieCatalogue --integrated
  python main.py --mode execute --vendor oracle --server dbhost:1521/ORCLPDB1 --username scott --password tiger \
      --sql "UPDATE emp SET sal = sal * 1.1" --kind statement
"""
from __future__ import annotations

import argparse
import sys
import traceback

from dbtester.connector import DEFAULT_CONFIG_PATH, CommandType, _setup_logger, load_config
from dbtester.form import CONNECT_SUCCESS, PERSIST_CHOICES, CommandKind, FormController, format_errors
from dbtester.registry import CONNECTORS, get_connector


MODES = ["connect", "execute", "query", "scalar", "dataset"]

logger = _setup_logger(load_config(DEFAULT_CONFIG_PATH)["paths"]["logs_dir"])


def build_form(args: argparse.Namespace) -> FormController:
    form = FormController(
        vendor=args.vendor,
        config_path=args.config,
        connector_factory=lambda vendor, params: get_connector(vendor, params, config_path=args.config),
    )
    if args.server is not None:
        form.server = args.server
    if args.database is not None:
        form.database = args.database
    form.username = args.username or ""
    form.password = args.password or ""
    if args.persist is not None:
        form.persist = args.persist
    form.set_integrated_security(args.integrated)
    form.query = args.sql or ""
    return form


def run_connect(form: FormController) -> int:
    status = form.connect()
    print(f"[DBTester] {status}")
    return 0 if status == CONNECT_SUCCESS else 2


def run_execute(form: FormController, kind: CommandKind) -> int:
    if not form.query.strip():
        print("[DBTester] ERROR: --sql is required for this mode")
        return 2
    status = form.execute(kind)
    print(f"[DBTester] {status}")
    if form.last_table is not None and not form.last_table.empty:
        print(form.last_table.head(20).to_string(index=False))
    # Any line after the count line is an error
    return 2 if len(status.splitlines()) > 1 else 0


def run_scalar(form: FormController, command_type: CommandType) -> int:
    with get_connector(form.vendor, form.build_params(), config_path=form.config_path) as conn:
        result = conn.execute_scalar(form.query, command_type)
        if not result:
            print(f"[DBTester] {format_errors(conn.error_list)}")
            return 2
        print(f"[DBTester] {result.value!r}")
    return 0


def run_dataset(form: FormController, command_type: CommandType) -> int:
    with get_connector(form.vendor, form.build_params(), config_path=form.config_path) as conn:
        result = conn.get_dataset(form.query, command_type)
        if not result:
            print(f"[DBTester] {format_errors(conn.error_list)}")
            return 2
        print(f"[DBTester] {len(result.value)} result sets returned.")
        for i, df in enumerate(result.value, start=1):
            print(f"--- result set {i} ({len(df)} rows)")
            print(df.head(20).to_string(index=False))
    return 0


def orchestrate(args: argparse.Namespace) -> int:
    try:
        form = build_form(args)
        if args.mode == "connect":
            return run_connect(form)
        if args.mode == "execute":
            return run_execute(form, CommandKind(args.kind))
        if args.mode == "query":
            return run_execute(form, CommandKind.QUERY)
        if args.mode == "scalar":
            return run_scalar(form, CommandType(args.command_type))
        if args.mode == "dataset":
            return run_dataset(form, CommandType(args.command_type))
        print(f"[DBTester] Unknown mode: {args.mode}")
        return 4
    except Exception as e:
        logger.exception("Command failed: %s\n%s", e, traceback.format_exc())
        print(f"[DBTester] ERROR: {e}")
        return 1


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="DB Connector Tester")
    p.add_argument("--mode", choices=MODES, required=True, help="Which action to run")
    p.add_argument("--vendor", choices=sorted(CONNECTORS), default=None,
                   help="Database vendor (default: connector.vendor from config)")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to db_config.yaml")
    p.add_argument("--server", default=None, help="Server/instance name, or DSN for Oracle")
    p.add_argument("--database", default=None, help="Database (catalog) name")
    p.add_argument("--username", default=None)
    p.add_argument("--password", default=None)
    p.add_argument("--persist", choices=PERSIST_CHOICES, default=None, help="Persist security info")
    p.add_argument("--integrated", action="store_true", help="Use integrated (OS) authentication")
    p.add_argument("--sql", default=None, help="SQL text, procedure name or table name")
    p.add_argument("--kind", choices=[k.value for k in CommandKind], default=CommandKind.AUTO.value,
                   help="For --mode execute: statement, query, or auto-detect from the row count")
    p.add_argument("--command-type", choices=[t.value for t in CommandType], default=CommandType.TEXT.value,
                   help="For --mode scalar/dataset: how to interpret --sql")
    return p.parse_args(argv)


if __name__ == "__main__":
    args = parse_args(sys.argv[1:])
    exit_code = orchestrate(args)
    sys.exit(exit_code)
