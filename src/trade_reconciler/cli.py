from __future__ import annotations

import argparse
import sys
from pathlib import Path

from trade_reconciler.config.paths import data_dir, default_db_path, ensure_data_dirs, exports_dir, imports_dir
from trade_reconciler.config.settings import get_settings
from trade_reconciler.db.migrate import migrate, session_factory
from trade_reconciler.db.repository import SqlTradeGateway, list_trades
from trade_reconciler.errors import ImportFileError, PersistenceError
from trade_reconciler.ingest.csv_import import import_trades_csv
from trade_reconciler.ingest.export import export_trades_csv, export_trades_json
from trade_reconciler.ingest.import_result import ImportResult
from trade_reconciler.ingest.json_import import import_trades_json
from trade_reconciler.ingest.registry import AUTO_BROKER, default_registry
from trade_reconciler.utils.logging import configure_logging


def _print_result(result: ImportResult) -> None:
    print(f"Imported {result.success} trades, {result.failed} failed rows.")
    for message in result.errors:
        print(f"  {message}")


def _gateway(database_url: str | None) -> SqlTradeGateway:
    engine = migrate(database_url)
    return SqlTradeGateway(session_factory(engine))


def _write_output(text: str, out: str | None) -> None:
    if out:
        Path(out).write_text(text, encoding="utf-8")
        print(f"Wrote {out}")
    else:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")


def _cmd_init_db(args: argparse.Namespace) -> int:
    migrate(args.database_url)
    print("Initialized database schema.")
    return 0


def _cmd_paths(_: argparse.Namespace) -> int:
    ensure_data_dirs()
    print(f"DATA_DIR={data_dir()}")
    print(f"IMPORTS_DIR={imports_dir()}")
    print(f"EXPORTS_DIR={exports_dir()}")
    print(f"DB_PATH={default_db_path()}")
    return 0


def _cmd_import_csv(args: argparse.Namespace) -> int:
    result = import_trades_csv(
        args.path,
        account_id=args.account,
        gateway=_gateway(args.database_url),
        broker=args.broker,
    )
    _print_result(result)
    return 0


def _cmd_import_json(args: argparse.Namespace) -> int:
    result = import_trades_json(
        args.path,
        account_id=args.account,
        gateway=_gateway(args.database_url),
    )
    _print_result(result)
    return 0


def _load_trades(args: argparse.Namespace):
    engine = migrate(args.database_url)
    with session_factory(engine)() as session:
        return list_trades(session, account_id=args.account)


def _cmd_export_json(args: argparse.Namespace) -> int:
    _write_output(export_trades_json(_load_trades(args)), args.out)
    return 0


def _cmd_export_csv(args: argparse.Namespace) -> int:
    _write_output(export_trades_csv(_load_trades(args)), args.out)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Broker transaction import and FIFO reconciliation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL; defaults to DATABASE_URL or the local SQLite file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sp_init_db = subparsers.add_parser("init-db", help="Create/update local database schema")
    sp_init_db.set_defaults(func=_cmd_init_db)

    sp_paths = subparsers.add_parser("paths", help="Print configured data paths")
    sp_paths.set_defaults(func=_cmd_paths)

    sp_csv = subparsers.add_parser("import-csv", help="Import and reconcile a broker CSV export")
    sp_csv.add_argument("path", help="CSV file to import.")
    sp_csv.add_argument("--account", required=True, help="Account the trades belong to.")
    sp_csv.add_argument(
        "--broker",
        default=AUTO_BROKER,
        choices=[AUTO_BROKER, *default_registry().names],
        help="Adapter to use; 'auto' detects from the header row.",
    )
    sp_csv.set_defaults(func=_cmd_import_csv)

    sp_json = subparsers.add_parser("import-json", help="Import a previously exported JSON journal")
    sp_json.add_argument("path", help="JSON file to import.")
    sp_json.add_argument("--account", required=True, help="Account the trades belong to.")
    sp_json.set_defaults(func=_cmd_import_json)

    for name, func, label in (
        ("export-json", _cmd_export_json, "JSON"),
        ("export-csv", _cmd_export_csv, "CSV"),
    ):
        sp_export = subparsers.add_parser(name, help=f"Export stored trades as {label}")
        sp_export.add_argument("--account", default=None, help="Only export this account.")
        sp_export.add_argument("--out", default=None, help="Output file; stdout when omitted.")
        sp_export.set_defaults(func=func)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        configure_logging("DEBUG", force=True)
    else:
        configure_logging(get_settings().log_level)
    try:
        return args.func(args)
    except (ImportFileError, PersistenceError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
