from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ledger_doctor import __version__ as TOOL_VERSION
from ledger_doctor.config import LedgerConfig
from ledger_doctor.contracts import build_payload, build_run_summary
from ledger_doctor.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    SchemaResolutionError,
    StoreError,
)
from ledger_doctor.importer import import_ledger
from ledger_doctor.logging import setup_logging
from ledger_doctor.repair import repair_balances
from ledger_doctor.reports import (
    FILTER_TYPES,
    VIEWS,
    assess_customer,
    dashboard_summary,
    due_timeline,
    load_balance_views,
    past_due_totals,
    payment_list,
)
from ledger_doctor.store.base import LedgerStore
from ledger_doctor.store.supabase import SupabaseStore

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class LedgerDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=json_default)


def timestamp_token(config: LedgerConfig) -> str:
    if config.output_stamp:
        return config.output_stamp
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def build_store(config: LedgerConfig) -> LedgerStore:
    return SupabaseStore.from_config(config.store)


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (ConfigurationError, StoreError, EntityNotFoundError)):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (SchemaResolutionError, ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def load_config(args: argparse.Namespace) -> LedgerConfig:
    config = LedgerConfig.from_env()
    overrides = {}
    if getattr(args, "sheet_name", None):
        overrides["sheet_name"] = args.sheet_name
    if getattr(args, "batch_size", None) is not None:
        overrides["batch_size"] = args.batch_size
    if getattr(args, "pause", None) is not None:
        overrides["batch_pause_seconds"] = args.pause
    if getattr(args, "decimal_separator", None):
        overrides["decimal_separator"] = args.decimal_separator
    if overrides:
        config.imports = dataclasses.replace(config.imports, **overrides)
    return config


def configure_logging(args: argparse.Namespace, config: LedgerConfig) -> None:
    if getattr(args, "verbose", False):
        level = "DEBUG"
    elif getattr(args, "quiet", False):
        level = "WARNING"
    else:
        level = config.log_level
    setup_logging(level)


def import_output_path(explicit: str | None, input_path: Path, config: LedgerConfig) -> Path | None:
    if not explicit:
        return None
    path = Path(explicit)
    if path.is_dir():
        path = path / f"{input_path.stem}-import-{timestamp_token(config)}.json"
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def format_amount(value: float) -> str:
    return f"{value:,.2f}"


def render_import_text(payload: dict[str, Any]) -> str:
    rows = payload["rows"]
    reconcile = payload["reconcile"]
    status = payload["run_summary"]["status"]
    lines = [
        "ledger-doctor import",
        f"File: {payload['input_file']}",
        f"Format: {payload['source']['detected_format']}",
        f"Status: {status}",
        f"Data rows: {rows['total_rows']}",
        f"Candidates: {rows['candidates']}",
        f"Blank codes skipped: {rows['blank_code_rows']}",
        f"Duplicate codes dropped: {len(rows['duplicate_codes'])}",
        f"Values defaulted: {rows['defaulted_values']}",
    ]
    if payload["source"].get("sheet_name"):
        lines.append(f"Sheet: {payload['source']['sheet_name']}")
    if not payload["dry_run"]:
        lines.extend(
            [
                f"Customers created: {reconcile['customers_created']}",
                f"Customers updated: {reconcile['customers_updated']}",
                f"Balances created: {reconcile['balances_created']}",
                f"Balances updated: {reconcile['balances_updated']}",
                f"Batches: {reconcile['batches_completed']}/{reconcile['batches_total']}",
            ]
        )
        if reconcile["unresolved_customers"]:
            lines.append(f"Unresolved customers: {reconcile['unresolved_customers']}")
        if reconcile["error"]:
            lines.append(f"Error: {reconcile['error']}")
    return "\n".join(lines) + "\n"


def render_payments_text(rows: list[dict[str, Any]], filter_type: str, view: str) -> str:
    lines = [f"ledger-doctor payments ({filter_type}, {view}): {len(rows)} rows"]
    for row in rows:
        flags = []
        if row["is_past_due"]:
            flags.append("overdue")
        if row["is_upcoming"]:
            flags.append("upcoming")
        lines.append(
            f"{row['due_date'] or '-':<10}  {row['code']:<12}  {(row['name'] or '')[:30]:<30}  "
            f"{format_amount(row['total_balance']):>16}  {','.join(flags)}"
        )
    return "\n".join(lines) + "\n"


def render_risk_text(assessment: dict[str, Any]) -> str:
    customer = assessment["customer"]
    risk = assessment["risk"]
    lines = [
        "ledger-doctor risk",
        f"Customer: {customer['code']} {customer.get('name') or ''}".rstrip(),
        f"Score: {risk['score']}",
        f"Suggested: {risk['suggested']}",
        f"Effective: {assessment['effective']}",
    ]
    for name, value in sorted(risk["components"].items()):
        lines.append(f"- {name}: {value:.1f}")
    classification = assessment.get("classification")
    if classification:
        lines.append(f"Past due: {'yes' if classification['is_past_due'] else 'no'}")
        lines.append(f"Upcoming: {'yes' if classification['is_upcoming'] else 'no'}")
    if assessment["reminders"]:
        lines.append(f"Open reminders: {len(assessment['reminders'])}")
    return "\n".join(lines) + "\n"


def render_dashboard_text(summary: dict[str, Any]) -> str:
    lines = [
        "ledger-doctor dashboard",
        f"Customers: {summary['customers']}",
        f"Suppliers: {summary['suppliers']}",
        f"Past due: {summary['past_due_count']} ({format_amount(summary['past_due_amount'])})",
        f"Upcoming: {summary['upcoming_count']} ({format_amount(summary['upcoming_amount'])})",
        f"Total receivable: {format_amount(summary['total_receivable'])}",
    ]
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = LedgerDoctorArgumentParser(prog="ledger-doctor", description="Receivables ledger import and risk reporting.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    imp = subparsers.add_parser("import", help="Import a ledger export into the store.")
    imp.add_argument("input", help="Input file path")
    imp.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name (default: first sheet)")
    imp.add_argument("--batch-size", dest="batch_size", type=int, help="Candidates per store batch")
    imp.add_argument("--pause", type=float, help="Seconds to wait between batches")
    imp.add_argument("--decimal-separator", dest="decimal_separator", choices=[",", "."], help="Declared decimal separator; disables inference")
    imp.add_argument("--dry-run", action="store_true", help="Parse only; write nothing")
    imp.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    imp.add_argument("-o", "--output", help="Write the JSON summary to this file or directory")
    imp.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    imp.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    payments = subparsers.add_parser("payments", help="List classified balances.")
    payments.add_argument("--filter", dest="filter_type", choices=FILTER_TYPES, default="all", help="Which balances to list")
    payments.add_argument("--days", type=int, help="Upcoming window in days")
    payments.add_argument("--view", choices=VIEWS, default="all", help="Customers, suppliers or both")
    payments.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    payments.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    payments.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    risk = subparsers.add_parser("risk", help="Score one customer.")
    risk.add_argument("code", help="Customer code")
    risk.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    risk.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    risk.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    dashboard = subparsers.add_parser("dashboard", help="Portfolio summary.")
    dashboard.add_argument("--days", type=int, help="Upcoming window in days")
    dashboard.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    dashboard.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    dashboard.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    repair = subparsers.add_parser("repair", help="Re-parse stored balance amounts.")
    repair.add_argument("--dry-run", action="store_true", help="Report fixes without writing them")
    repair.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    repair.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    repair.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_import(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        config = load_config(args)
        configure_logging(args, config)
        output_path = import_output_path(args.output, input_path, config)
        store = None if args.dry_run else build_store(config)
        payload = import_ledger(input_path, store, config.imports, dry_run=args.dry_run)
        if output_path:
            payload["run_summary"]["output_file"] = str(output_path)
            write_json(output_path, payload)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_import_text(payload).rstrip(), quiet=args.quiet)
            if output_path:
                emit_human(f"Summary written: {output_path}", quiet=args.quiet)
        if payload["run_summary"]["status"] == "failed":
            return EXIT_PARTIAL
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_payments(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
        configure_logging(args, config)
        days = args.days if args.days is not None else config.risk.upcoming_days
        views = load_balance_views(build_store(config))
        rows = payment_list(
            views,
            filter_type=args.filter_type,
            days_ahead=days,
            view=args.view,
            min_balance=config.risk.min_balance,
        )
        if args.json:
            payload = build_payload(
                "ledger_doctor.payment_list",
                filter=args.filter_type,
                view=args.view,
                days_ahead=days,
                rows=rows,
                run_summary=build_run_summary(tool="ledger-doctor", command="payments", metrics={"rows": len(rows)}),
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_payments_text(rows, args.filter_type, args.view).rstrip(), quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_risk(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
        configure_logging(args, config)
        assessment = assess_customer(
            build_store(config),
            args.code,
            days_ahead=config.risk.upcoming_days,
            min_balance=config.risk.min_balance,
        ).to_dict()
        if args.json:
            payload = build_payload(
                "ledger_doctor.risk_assessment",
                **assessment,
                run_summary=build_run_summary(
                    tool="ledger-doctor",
                    command="risk",
                    metrics={"score": assessment["risk"]["score"]},
                ),
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_risk_text(assessment).rstrip(), quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_dashboard(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
        configure_logging(args, config)
        days = args.days if args.days is not None else config.risk.upcoming_days
        views = load_balance_views(build_store(config))
        summary = dashboard_summary(views, days_ahead=days, min_balance=config.risk.min_balance)
        if args.json:
            payload = build_payload(
                "ledger_doctor.dashboard",
                summary=summary,
                timeline=due_timeline(views),
                past_due_by_sector=past_due_totals(views, "sector_code"),
                past_due_by_region=past_due_totals(views, "region_code"),
                run_summary=build_run_summary(tool="ledger-doctor", command="dashboard", metrics=summary),
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_dashboard_text(summary).rstrip(), quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_repair(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
        configure_logging(args, config)
        result = repair_balances(build_store(config), dry_run=args.dry_run)
        if args.json:
            payload = build_payload(
                "ledger_doctor.repair_summary",
                **result,
                run_summary=build_run_summary(
                    tool="ledger-doctor",
                    command="repair",
                    metrics={"checked": result["checked"], "fixed": result["fixed"]},
                ),
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(
                f"ledger-doctor repair\nChecked: {result['checked']}\nFixed: {result['fixed']}",
                quiet=args.quiet,
            )
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "import":
            return run_import(args)
        if args.command == "payments":
            return run_payments(args)
        if args.command == "risk":
            return run_risk(args)
        if args.command == "dashboard":
            return run_dashboard(args)
        if args.command == "repair":
            return run_repair(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
